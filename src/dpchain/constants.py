"""Protocol names, option names and defaults shared across dpchain."""

# Session defaults
DEFAULT_PORT = 5550
DEFAULT_FIRMWARE_LEVEL = 5
DEFAULT_WAIT_TIME_SECONDS = 30
DEFAULT_POLL_INT_MILLIS = 2000
DEFAULT_OUTPUT_TYPE = "PARSED"

# Output types
OUTPUT_PARSED = "PARSED"
OUTPUT_XML = "XML"
OUTPUT_LINES = "LINES"
OUTPUT_TYPES = (OUTPUT_PARSED, OUTPUT_XML, OUTPUT_LINES)

# Checkpoint actions (SOMA do-action)
SAVE_CHECKPOINT_OP_NAME = "SaveCheckpoint"
ROLLBACK_CHECKPOINT_OP_NAME = "RollbackCheckpoint"
REMOVE_CHECKPOINT_OP_NAME = "RemoveCheckpoint"
CHK_NAME_OPT_NAME = "ChkName"

# Operations with special handling
GET_STATUS_OP_NAME = "get-status"
SET_FILE_OP_NAME = "set-file"
GET_FILE_OP_NAME = "get-file"
DO_IMPORT_OP_NAME = "do-import"
DO_EXPORT_OP_NAME = "do-export"
CREATE_DIR_OP_NAME = "CreateDir"
GET_FILESTORE_OP_NAME = "get-filestore"
SET_DIR_CUSTOM_OP_NAME = "set-dir"
GET_DIR_CUSTOM_OP_NAME = "get-dir"

# Document option names
DOMAIN_OPT_NAME = "domain"
DOMAIN_UCC_OPT_NAME = "Domain"
CLASS_OPT_NAME = "class"
NAME_OPT_NAME = "name"
INPUT_FILE_OPT_NAME = "input-file"
DIR_OPT_NAME = "Dir"
LOCATION_OPT_NAME = "location"
OBJECT_STATUS_OPT_VALUE = "ObjectStatus"

# Unqualified get-status hides objects reporting this line
EXPECTED_STATUS_RESPONSE = "OpState=up"

# Functional options: consumed by the operation, never written to the document
END_POINT_OPT_NAME = "endPoint"
FILTER_OPT_NAME = "filter"
FILTER_OUT_OPT_NAME = "filterOut"
SRC_FILE_OPT_NAME = "srcFile"
DEST_FILE_OPT_NAME = "destFile"
SRC_DIR_OPT_NAME = "srcDir"
DEST_DIR_OPT_NAME = "destDir"
FAIL_STATE_OPT_NAME = "failState"
FAIL_ON_ERROR_OPT_NAME = "failOnError"
WAIT_FOR_OPT_NAME = "waitFor"
WAIT_FOR_XPATH_OPT_NAME = "waitForXPath"
WAIT_TIME_OPT_NAME = "waitTime"
POLL_INT_OPT_NAME = "pollIntMillis"
MEM_SAFE_OPT_NAME = "memSafe"
SUPPRESS_RESPONSE_OPT_NAME = "suppressResponse"

TRUE_OPT_VALUE = "true"

# Logging truncation (non-verbose output)
OPTION_LOG_THRESHOLD = 500
OPTION_LOG_KEEP = 200
DUMP_LOG_THRESHOLD = 4000
DUMP_LOG_KEEP = 2000
TRUNCATED_MARKER = "... \n* truncated *"
