"""Response classification.

Turns a raw management response into a severity and the text shown to the
user, applying the operation's failState, filter and filterOut.

Response shapes recognised (namespace-agnostic):
    <HttpErrorResponse>...</HttpErrorResponse>     transport surrogate, FATAL
    <env:Fault>...</env:Fault>                     SOAP fault, FATAL
    <dp:result>OK</dp:result>                      INFO
    <dp:result><error-log>...</error-log></dp:result>   FATAL
    <dp:result>ERROR ...</dp:result>               FATAL
    <dp:result>WARN ...</dp:result>                WARN
    <cfg-result status="error" .../>               ERROR (import results)
    <amp:Status>ok|error</amp:Status>              INFO / FATAL
"""
import base64
import binascii
import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional

from .. import constants as C
from ..chain.errors import ChainError, ClassificationError
from ..chain.model import Classification, Operation, Severity
from .xmlutil import HTTP_ERROR_ROOT, find_local, iter_local, local_name, pretty_xml, text_of

logger = logging.getLogger(__name__)

# Elements carrying only bookkeeping
SKIPPED_ELEMENTS = {"timestamp"}
# Elements rendered as their bare text
TEXT_ELEMENTS = {"result", "Status"}

IMPORT_NAME_TOKEN = re.compile(r"(\s)(name=\S+)(\s)")
IMPORT_CLASS_TOKEN = re.compile(r"(\s)(class=\S+)(\s)")


def _attributes(element: ET.Element) -> list[str]:
    return [f"{local_name(k)}={v}" for k, v in element.attrib.items()]


def flatten(root: ET.Element) -> list[tuple[int, str]]:
    """Render a response tree as (depth, line) records.

    An element whose children are all plain leaves becomes one record line
    ``tag attr=value child=text ...``. Other elements emit a line only when
    they carry attributes or text, then recurse.
    """
    records: list[tuple[int, str]] = []
    _flatten(root, 0, records)
    return records


def _is_field(element: ET.Element) -> bool:
    tag = local_name(element.tag)
    return (
        len(element) == 0
        and not element.attrib
        and tag not in SKIPPED_ELEMENTS
        and tag not in TEXT_ELEMENTS
    )


def _flatten(element: ET.Element, depth: int, records: list[tuple[int, str]]) -> None:
    tag = local_name(element.tag)
    if tag in SKIPPED_ELEMENTS:
        return
    children = list(element)
    text = (element.text or "").strip()

    if tag in TEXT_ELEMENTS and not children:
        if text:
            records.append((depth, text))
        return

    if children and all(_is_field(c) for c in children):
        parts = [tag] + _attributes(element)
        parts += [f"{local_name(c.tag)}={(c.text or '').strip()}" for c in children]
        records.append((depth, " ".join(parts)))
        return

    emitted = bool(element.attrib or text)
    if emitted:
        parts = [tag] + _attributes(element)
        if text:
            parts.append(text)
        records.append((depth, " ".join(parts)))
    for child in children:
        _flatten(child, depth + 1 if emitted else depth, records)


def strip_import_tokens(text: str) -> str:
    """Drop name=/class= tokens from import result lines."""
    text = IMPORT_NAME_TOKEN.sub(r"\1", text)
    return IMPORT_CLASS_TOKEN.sub(r"\1", text)


class ResponseClassifier:
    """Classifies responses and renders them for one output type."""

    def __init__(self, output_type: str = C.OUTPUT_PARSED):
        self.output_type = output_type.upper()

    def parse(self, raw: Optional[str]) -> ET.Element:
        """Parse response text.

        Raises:
            ClassificationError: if the response is empty or not XML
        """
        if raw is None or not raw.strip():
            raise ClassificationError("Failed to parse response: empty response")
        try:
            return ET.fromstring(raw)
        except ET.ParseError as e:
            raise ClassificationError(f"Failed to parse response: {e}") from e

    def severity_of(self, root: ET.Element) -> tuple[Severity, list[str]]:
        """Severity and any error detail lines found in the document."""
        if local_name(root.tag) == HTTP_ERROR_ROOT:
            return Severity.FATAL, [text_of(root)]

        severity = Severity.INFO
        details: list[str] = []

        fault = find_local(root, "Fault")
        if fault is not None:
            reason = text_of(find_local(fault, "faultstring")) or text_of(fault)
            return Severity.FATAL, [reason]

        for result in iter_local(root, "result"):
            error_log = find_local(result, "error-log")
            text = text_of(result)
            if error_log is not None:
                severity = max(severity, Severity.FATAL)
                details.extend(
                    text_of(event) for event in iter_local(error_log, "log-event") if text_of(event)
                )
            elif "ERROR" in text.upper():
                severity = max(severity, Severity.FATAL)
                details.append(text)
            elif text.upper().startswith("WARN"):
                severity = max(severity, Severity.WARN)
                details.append(text)

        for element in root.iter():
            if element.get("status", "").lower() == "error":
                severity = max(severity, Severity.ERROR)
                details.append(" ".join([local_name(element.tag)] + _attributes(element)))

        for status in iter_local(root, "Status"):
            value = text_of(status).lower()
            if value == "error":
                severity = max(severity, Severity.FATAL)
                details.append(text_of(status))

        return severity, details

    def render(self, raw: str, root: ET.Element) -> str:
        if self.output_type == C.OUTPUT_XML:
            return pretty_xml(raw)
        records = flatten(root)
        if self.output_type == C.OUTPUT_LINES:
            return "\n".join(line for _, line in records)
        return "\n".join(f"{'  ' * depth}{line}" for depth, line in records)

    @staticmethod
    def apply_filters(text: str, operation: Operation) -> str:
        lines = text.splitlines()
        if operation.filter:
            keep = re.compile(operation.filter)
            lines = [line for line in lines if keep.search(line)]
        if operation.filter_out:
            drop = re.compile(operation.filter_out)
            lines = [line for line in lines if not drop.search(line)]
        return "\n".join(lines)

    def classify(self, raw: Optional[str], operation: Optional[Operation] = None) -> Classification:
        """Classify a response.

        Raises:
            ClassificationError: if the response cannot be parsed, or a
                failState / filter pattern is not a valid regex
        """
        root = self.parse(raw)
        severity, details = self.severity_of(root)
        text = self.render(raw, root)

        if operation is not None:
            try:
                if operation.fail_state and re.search(operation.fail_state, text, re.MULTILINE):
                    logger.debug(f"{operation.invoked_name}: failState '{operation.fail_state}' matched")
                    severity = Severity.FATAL
                if self.output_type != C.OUTPUT_XML:
                    text = self.apply_filters(text, operation)
            except re.error as e:
                raise ClassificationError(
                    f"Invalid pattern for {operation.invoked_name}: {e}",
                    operation=operation.invoked_name,
                ) from e

        if severity > Severity.INFO and self.output_type != C.OUTPUT_XML:
            missing = [d for d in details if d and d not in text]
            if missing:
                text = "\n".join([text] + missing) if text else "\n".join(missing)
        return Classification(severity, text)

    def intercept_result(self, text: str, operation: Operation, success: bool) -> str:
        """Rewrite successful parsed do-import output."""
        if (
            success
            and operation.name == C.DO_IMPORT_OP_NAME
            and self.output_type == C.OUTPUT_PARSED
        ):
            return strip_import_tokens(text)
        return text

    def save_output(self, raw: str, dest_file: str) -> Path:
        """Decode the base64 file content of a response into dest_file.

        Raises:
            ChainError: if the response has no file content or the write fails
        """
        root = self.parse(raw)
        file_element = find_local(root, "file")
        if file_element is None or not (file_element.text or "").strip():
            raise ChainError(f"Response contains no file content to save to {dest_file}")
        try:
            content = base64.b64decode("".join(file_element.text.split()), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ChainError(f"Response file content is not valid base64: {e}") from e

        path = Path(dest_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            raise ChainError(f"Failed to write {dest_file}: {e}") from e
        logger.info(f"Saved {len(content)} bytes to {path}")
        return path
