"""Generate, post and classify single operations.

Shared by the executor, the poll engine and the checkpoint manager so that
every request, including rollback and checkpoint removal, goes through the
same path and lands in the audit trail.
"""
import logging
from typing import Optional, Protocol

from .. import constants as C
from ..config.session import Verbosity
from ..protocol.classifier import ResponseClassifier
from ..utils.audit_log import AuditTrail
from .errors import ClassificationError, GenerationError, SchemaNotFound
from .generator import PayloadGenerator
from .model import Classification, Operation, OperationChain, Severity
from .policy import ErrorPolicy

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def post(self, endpoint: str, payload: str, operation_name: Optional[str] = None) -> str:
        ...


class OperationDispatcher:
    """Single-operation plumbing for one execution."""

    def __init__(
        self,
        chain: OperationChain,
        generator: PayloadGenerator,
        transport: Transport,
        classifier: ResponseClassifier,
        policy: ErrorPolicy,
        verbosity: Optional[Verbosity] = None,
        audit: Optional[AuditTrail] = None,
        log_output: bool = True,
    ):
        self.chain = chain
        self.generator = generator
        self.transport = transport
        self.classifier = classifier
        self.policy = policy
        self.verbosity = verbosity or Verbosity()
        self.audit = audit
        self.log_output = log_output
        self.checkpoint: Optional[str] = None
        self.posted: list[str] = []
        self.removed: list[str] = []
        self.warnings: list[str] = []

    # === Output ===

    def log_info(self, operation: Operation, text: str) -> None:
        if not self.log_output:
            print(text)
        else:
            logger.info(f"{operation.invoked_name}:\n{text}")

    def log_warning(self, operation: Operation, text: str) -> None:
        self.warnings.append(f"{operation.invoked_name}: {text}")
        if not self.log_output:
            print(f"WARNING: {text}")
        else:
            logger.warning(f"{operation.invoked_name} errorResponse:\n{text}")

    def log_error(self, operation: Operation, text: str) -> None:
        if not self.log_output:
            print(f"ERROR: {text}")
            return
        logger.error(f"{operation.invoked_name} errorResponse:\n{text}")
        if not text.strip() and operation.response:
            logger.error(self.verbosity.dump_text(operation.response))

    # === Generate / post / classify ===

    def generate(self, operation: Operation) -> Optional[str]:
        """Generate a payload, dropping the operation from the chain on failure.

        Raises:
            SchemaNotFound, GenerationError: only when running fail-fast
        """
        try:
            return self.generator.generate(operation)
        except (SchemaNotFound, GenerationError) as e:
            if self.chain.remove(operation):
                self.removed.append(operation.invoked_name)
            logger.error(f"{operation.invoked_name}: {e.message}")
            if self.policy.fail_on_error:
                raise
            return None

    async def post(self, operation: Operation) -> str:
        """Post the operation's payload and store the raw response."""
        logger.debug(f"Posting {operation.invoked_name} to {operation.endpoint}")
        raw = await self.transport.post(operation.endpoint, operation.payload, operation.invoked_name)
        operation.response = raw
        self.posted.append(operation.invoked_name)
        logger.debug(f"{operation.invoked_name} response:\n{self.verbosity.dump_text(raw)}")
        return raw

    async def generate_and_post(self, operation: Operation) -> Optional[str]:
        if self.generate(operation) is None:
            return None
        return await self.post(operation)

    def result_text(self, operation: Operation, text: str, success: bool) -> str:
        text = self.classifier.intercept_result(text, operation, success)
        hook = operation.hook or operation.parent
        if hook is not None:
            text = hook.intercept_result(text, success)
        return text

    def classify(self, operation: Operation, handle_errors: bool = True) -> Classification:
        """Classify the operation's response and report it.

        Successful responses are logged unless suppressed, and saved to the
        operation's destFile when it has one. Error handling itself is left
        to the caller.

        Raises:
            ClassificationError: if the response cannot be parsed
        """
        try:
            classification = self.classifier.classify(operation.response, operation)
        except ClassificationError as e:
            self._audit(operation, Severity.FATAL.name, False, error=e.message)
            raise

        severity = classification.severity
        text = self.result_text(operation, classification.message, classification.success)

        if severity > Severity.INFO and handle_errors and self.verbosity.debug:
            logger.warning(f"{operation.invoked_name} errorResponse:\n{text}")
        elif severity <= Severity.INFO and not operation.suppress_response:
            self.log_info(operation, text)

        if classification.success and operation.dest_file and operation.name in (
            C.GET_FILE_OP_NAME,
            C.DO_EXPORT_OP_NAME,
        ):
            self.classifier.save_output(operation.response, operation.dest_file)

        self._audit(
            operation,
            severity.name,
            classification.success,
            output=text,
            error=None if classification.success else text,
        )
        return Classification(severity, text)

    def _audit(
        self,
        operation: Operation,
        severity: str,
        success: bool,
        output: str = "",
        error: Optional[str] = None,
    ) -> None:
        if self.audit is None:
            return
        self.audit.log_post(
            operation=operation.invoked_name,
            severity=severity,
            success=success,
            domain=operation.effective_domain(self.generator.default_domain),
            endpoint=operation.endpoint,
            checkpoint=self.checkpoint,
            output=output,
            error=error,
        )
