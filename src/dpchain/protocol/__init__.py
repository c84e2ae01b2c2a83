"""Wire-level pieces: HTTPS transport, response classification, XPath."""
from .classifier import ResponseClassifier, strip_import_tokens
from .transport import XmlManagementTransport
from .xpath import compile_xpath, evaluate_xpath

__all__ = [
    "ResponseClassifier",
    "strip_import_tokens",
    "XmlManagementTransport",
    "compile_xpath",
    "evaluate_xpath",
]
