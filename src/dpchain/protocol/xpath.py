"""XPath wait predicates, compiled and evaluated with lxml."""
import logging

from lxml import etree

from ..binding.dialects import AMP_NS, SOAP_ENV_NS, SOMA_NS
from ..chain.errors import PollPredicateInvalid

logger = logging.getLogger(__name__)

# Prefixes usable in waitForXPath expressions
NAMESPACES = {
    "dp": SOMA_NS,
    "amp": AMP_NS,
    "env": SOAP_ENV_NS,
    "soap": SOAP_ENV_NS,
}


def compile_xpath(expression: str) -> etree.XPath:
    """Compile a wait predicate.

    Raises:
        PollPredicateInvalid: if the expression does not compile
    """
    try:
        return etree.XPath(expression, namespaces=NAMESPACES)
    except etree.XPathError as e:
        raise PollPredicateInvalid(
            f"Failed to validate XPath expression '{expression}' - {e}"
        ) from e


def evaluate_xpath(compiled: etree.XPath, xml_text: str) -> bool:
    """Evaluate a compiled predicate against a response document.

    Node-sets are true when non-empty, strings when non-empty, numbers when
    non-zero. An unparseable document never matches.

    Raises:
        PollPredicateInvalid: if evaluation itself fails
    """
    try:
        document = etree.fromstring(xml_text.encode("utf-8"))
    except (etree.XMLSyntaxError, ValueError) as e:
        logger.debug(f"Response not parseable for XPath evaluation: {e}")
        return False
    try:
        result = compiled(document)
    except etree.XPathError as e:
        raise PollPredicateInvalid(f"Failed to evaluate XPath expression '{compiled.path}' - {e}") from e
    if isinstance(result, list):
        return len(result) > 0
    return bool(result)
