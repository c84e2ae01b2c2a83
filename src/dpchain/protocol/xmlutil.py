"""Small ElementTree helpers shared by the classifier and transport."""
import xml.etree.ElementTree as ET
from typing import Iterator, Optional
from xml.sax.saxutils import escape

HTTP_ERROR_ROOT = "HttpErrorResponse"


def local_name(tag: str) -> str:
    """Tag without its {namespace} prefix."""
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def iter_local(root: ET.Element, name: str) -> Iterator[ET.Element]:
    """All elements below (and including) root with the given local name."""
    for element in root.iter():
        if local_name(element.tag) == name:
            yield element


def find_local(root: ET.Element, name: str) -> Optional[ET.Element]:
    return next(iter_local(root, name), None)


def text_of(element: Optional[ET.Element]) -> str:
    """Concatenated, stripped text content of an element."""
    if element is None:
        return ""
    return " ".join(part.strip() for part in element.itertext() if part.strip())


def pretty_xml(text: str) -> str:
    """Indented XML, or the input unchanged if it does not parse."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError:
        return text
    ET.indent(root)
    return ET.tostring(root, encoding="unicode")


def http_error_response(message: str) -> str:
    """Surrogate response document for a failed HTTP exchange."""
    return f"<{HTTP_ERROR_ROOT}>{escape(message)}</{HTTP_ERROR_ROOT}>"
