"""XSD-backed schema binding.

Loads a management protocol schema, answers whether it declares an
operation, and builds a request document for one operation at a time:

    binding = SchemaBinding("schemas/default/xml-mgmt.xsd")
    binding.new_document()
    binding.set_target_node("SaveCheckpoint")
    binding.set_envelope()
    binding.set_value("ChkName", "CP20240101120000")
    payload = binding.serialize()

Only the structural subset of XSD needed to place values is understood:
global/local elements, refs, named and inline complex types, sequence /
choice / all / group particles, attributes and attribute groups, simple
and complex content extensions.
"""
import logging
import xml.etree.ElementTree as ET
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..chain.errors import GenerationError, SchemaLoadError, SchemaNotFound
from .dialects import AMP_NS, SOAP_ENV_NS, SOMA_NS, Dialect, endpoint_for_schema

logger = logging.getLogger(__name__)

XSD_NS = "http://www.w3.org/2001/XMLSchema"
XS = f"{{{XSD_NS}}}"

ET.register_namespace("dp", SOMA_NS)
ET.register_namespace("amp", AMP_NS)
ET.register_namespace("env", SOAP_ENV_NS)


@dataclass(eq=False)
class ContentModel:
    """Attributes, child elements and text allowance of an element."""
    attributes: list[str] = field(default_factory=list)
    children: list["ElementDecl"] = field(default_factory=list)
    has_text: bool = False


@dataclass(eq=False)
class ElementDecl:
    """One element declaration site."""
    name: str
    qualified: bool
    content: ContentModel
    repeatable: bool = False


def _local(qname: str) -> str:
    return qname.split(":", 1)[-1]


def _max_occurs(xsd_node: ET.Element) -> float:
    value = xsd_node.get("maxOccurs", "1")
    if value == "unbounded":
        return float("inf")
    try:
        return int(value)
    except ValueError:
        return 1


class SchemaBinding:
    """A loaded management schema plus the document currently being built."""

    def __init__(self, path: "str | Path"):
        self.path = Path(path)
        try:
            schema = ET.parse(self.path).getroot()
        except (OSError, ET.ParseError) as e:
            raise SchemaLoadError(f"Failed to load schema '{self.path}': {e}") from e

        self.target_namespace: Optional[str] = schema.get("targetNamespace")
        self._qualified_default = schema.get("elementFormDefault") == "qualified"
        self.dialect, self.endpoint = endpoint_for_schema(self.path)

        self._globals = {el.get("name"): el for el in schema.findall(f"{XS}element")}
        self._types = {el.get("name"): el for el in schema.findall(f"{XS}complexType")}
        self._groups = {el.get("name"): el for el in schema.findall(f"{XS}group")}
        self._attribute_groups = {
            el.get("name"): el for el in schema.findall(f"{XS}attributeGroup")
        }
        self._content_cache: dict[int, ContentModel] = {}

        referenced = {_local(el.get("ref")) for el in schema.iter(f"{XS}element") if el.get("ref")}
        self._global_decls = {
            name: ElementDecl(name, True, self._content_of(el))
            for name, el in self._globals.items()
        }
        self._roots = [
            decl for name, decl in self._global_decls.items() if name not in referenced
        ]
        self._names = self._collect_names()

        self._path: list[tuple[ElementDecl, ET.Element]] = []
        self._document: Optional[ET.Element] = None

        logger.debug(
            f"Loaded schema {self.path.name}: {len(self._names)} elements, "
            f"dialect={self.dialect.value}, endpoint={self.endpoint}"
        )

    def __repr__(self) -> str:
        return f"SchemaBinding({self.path.name!r})"

    # === Schema model ===

    def _content_of(self, xsd_element: ET.Element) -> ContentModel:
        key = id(xsd_element)
        if key in self._content_cache:
            return self._content_cache[key]
        model = ContentModel()
        self._content_cache[key] = model

        complex_type = xsd_element.find(f"{XS}complexType")
        type_name = xsd_element.get("type")
        if complex_type is not None:
            self._fill_complex(complex_type, model)
        elif xsd_element.find(f"{XS}simpleType") is not None:
            model.has_text = True
        elif type_name and _local(type_name) in self._types:
            self._fill_complex(self._types[_local(type_name)], model)
        else:
            # builtin, simple or anyType
            model.has_text = True
        return model

    def _fill_complex(self, node: ET.Element, model: ContentModel) -> None:
        if node.get("mixed") == "true":
            model.has_text = True
        for child in node:
            tag = child.tag
            if tag in (f"{XS}sequence", f"{XS}choice", f"{XS}all", f"{XS}group"):
                self._fill_particles(child, model, repeatable=False)
            elif tag == f"{XS}attribute":
                self._add_attribute(child, model)
            elif tag == f"{XS}attributeGroup":
                self._add_attribute_group(child, model)
            elif tag == f"{XS}simpleContent":
                model.has_text = True
                for derivation in child:
                    self._fill_complex(derivation, model)
            elif tag == f"{XS}complexContent":
                for derivation in child:
                    base = derivation.get("base")
                    if base and _local(base) in self._types:
                        self._fill_complex(self._types[_local(base)], model)
                    self._fill_complex(derivation, model)

    def _fill_particles(self, group: ET.Element, model: ContentModel, repeatable: bool) -> None:
        repeatable = repeatable or _max_occurs(group) > 1
        if group.tag == f"{XS}group" and group.get("ref"):
            named = self._groups.get(_local(group.get("ref")))
            if named is not None:
                for particle in named:
                    self._fill_particles(particle, model, repeatable)
            return
        for child in group:
            if child.tag == f"{XS}element":
                model.children.append(self._decl_for(child, repeatable))
            elif child.tag in (f"{XS}sequence", f"{XS}choice", f"{XS}all", f"{XS}group"):
                self._fill_particles(child, model, repeatable)

    def _decl_for(self, xsd_element: ET.Element, repeatable: bool) -> ElementDecl:
        repeatable = repeatable or _max_occurs(xsd_element) > 1
        ref = xsd_element.get("ref")
        if ref:
            name = _local(ref)
            target = self._globals.get(name)
            if target is None:
                raise SchemaLoadError(f"Schema {self.path.name} references unknown element '{name}'")
            return ElementDecl(name, True, self._content_of(target), repeatable)
        form = xsd_element.get("form")
        qualified = (form == "qualified") if form else self._qualified_default
        return ElementDecl(
            xsd_element.get("name"), qualified, self._content_of(xsd_element), repeatable
        )

    def _add_attribute(self, node: ET.Element, model: ContentModel) -> None:
        name = node.get("name") or _local(node.get("ref", ""))
        if name and name not in model.attributes:
            model.attributes.append(name)

    def _add_attribute_group(self, node: ET.Element, model: ContentModel) -> None:
        if node.get("ref"):
            node = self._attribute_groups.get(_local(node.get("ref")))
            if node is None:
                return
        for child in node:
            if child.tag == f"{XS}attribute":
                self._add_attribute(child, model)
            elif child.tag == f"{XS}attributeGroup":
                self._add_attribute_group(child, model)

    def _collect_names(self) -> set[str]:
        names: set[str] = set()
        seen: set[int] = set()
        queue = deque(self._global_decls.values())
        while queue:
            decl = queue.popleft()
            names.add(decl.name)
            if id(decl.content) in seen:
                continue
            seen.add(id(decl.content))
            queue.extend(decl.content.children)
        return names

    def _find_path(self, name: str) -> Optional[list[ElementDecl]]:
        """Shortest path from a root element to the named element."""
        seen: set[int] = set()
        queue = deque([root] for root in self._roots)
        while queue:
            path = queue.popleft()
            decl = path[-1]
            if decl.name == name:
                return path
            if id(decl.content) in seen:
                continue
            seen.add(id(decl.content))
            for child in decl.content.children:
                queue.append(path + [child])
        return None

    @staticmethod
    def _find_descendant(decl: ElementDecl, name: str) -> Optional[list[ElementDecl]]:
        """Shortest path below decl (exclusive) to the named element."""
        seen = {id(decl.content)}
        queue = deque([child] for child in decl.content.children)
        while queue:
            path = queue.popleft()
            last = path[-1]
            if last.name == name:
                return path
            if id(last.content) in seen:
                continue
            seen.add(id(last.content))
            for child in last.content.children:
                queue.append(path + [child])
        return None

    def _tag(self, decl: ElementDecl) -> str:
        if decl.qualified and self.target_namespace:
            return f"{{{self.target_namespace}}}{decl.name}"
        return decl.name

    # === Binder contract ===

    def supports(self, operation_name: str) -> bool:
        """Whether this schema declares the named element."""
        return operation_name in self._names

    def bind(self, operation_name: str) -> tuple[Dialect, str]:
        """Dialect and endpoint for an operation declared here."""
        if not self.supports(operation_name):
            raise SchemaNotFound(operation_name)
        return self.dialect, self.endpoint

    def new_document(self) -> None:
        self._path = []
        self._document = None

    def set_target_node(self, operation_name: str) -> None:
        """Build the element chain from the request root down to the operation."""
        decl_path = self._find_path(operation_name)
        if decl_path is None:
            raise SchemaNotFound(operation_name)
        self._path = []
        parent: Optional[ET.Element] = None
        for decl in decl_path:
            if parent is None:
                element = ET.Element(self._tag(decl))
            else:
                element = ET.SubElement(parent, self._tag(decl))
            self._path.append((decl, element))
            parent = element
        self._document = self._path[0][1]

    def set_envelope(self) -> None:
        """Wrap the request in a SOAP envelope."""
        self._require_target()
        envelope = ET.Element(f"{{{SOAP_ENV_NS}}}Envelope")
        body = ET.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
        body.append(self._path[0][1])
        self._document = envelope

    def set_value(self, field_name: str, value: Optional[str]) -> None:
        """Place a value in the document.

        Raises:
            GenerationError: if the operation has no such field
        """
        self._require_target()
        if not self._place(field_name, value, apply=True):
            raise GenerationError(
                f"Option '{field_name}' is not valid for operation "
                f"'{self._path[-1][0].name}' in schema {self.path.name}"
            )

    def accepts(self, field_name: str) -> bool:
        """Whether set_value(field_name, ...) would succeed."""
        self._require_target()
        return self._place(field_name, None, apply=False)

    def serialize(self) -> str:
        self._require_target()
        return ET.tostring(self._document, encoding="unicode")

    def describe(self, operation_name: str) -> dict:
        """Fields an operation accepts, for the 'find' command."""
        decl_path = self._find_path(operation_name)
        if decl_path is None:
            raise SchemaNotFound(operation_name)
        target = decl_path[-1]
        elements: list[str] = []
        seen = {id(target.content)}
        queue = deque(target.content.children)
        while queue:
            decl = queue.popleft()
            if decl.name not in elements:
                elements.append(decl.name)
            if id(decl.content) not in seen:
                seen.add(id(decl.content))
                queue.extend(decl.content.children)
        inherited = [attr for decl in decl_path[:-1] for attr in decl.content.attributes]
        return {
            "operation": operation_name,
            "schema": self.path.name,
            "dialect": self.dialect.value,
            "endpoint": self.endpoint,
            "path": [decl.name for decl in decl_path],
            "attributes": list(target.content.attributes),
            "inherited_attributes": inherited,
            "elements": elements,
            "text": target.content.has_text,
        }

    # === Value placement ===

    def _require_target(self) -> None:
        if not self._path:
            raise GenerationError(f"No target operation set on schema {self.path.name}")

    def _place(self, field_name: str, value: Optional[str], apply: bool) -> bool:
        target_decl, target_el = self._path[-1]
        attr_value = "" if value is None else value

        if "@" in field_name:
            element_name, attr = field_name.split("@", 1)
            if element_name == target_decl.name:
                if attr not in target_decl.content.attributes:
                    return False
                if apply:
                    target_el.set(attr, attr_value)
                return True
            sub_path = self._find_descendant(target_decl, element_name)
            if sub_path is None or attr not in sub_path[-1].content.attributes:
                return False
            if apply:
                self._ensure_path(target_el, sub_path, new_leaf=False).set(attr, attr_value)
            return True

        if field_name in target_decl.content.attributes:
            if apply:
                target_el.set(field_name, attr_value)
            return True

        for decl, element in reversed(self._path[:-1]):
            if field_name in decl.content.attributes:
                if apply:
                    element.set(field_name, attr_value)
                return True

        if field_name == target_decl.name and target_decl.content.has_text:
            if apply:
                target_el.text = value
            return True

        sub_path = self._find_descendant(target_decl, field_name)
        if sub_path is None:
            return False
        if apply:
            leaf = self._ensure_path(target_el, sub_path, new_leaf=sub_path[-1].repeatable)
            if value is not None:
                leaf.text = value
        return True

    def _ensure_path(
        self, parent: ET.Element, sub_path: list[ElementDecl], new_leaf: bool
    ) -> ET.Element:
        element = parent
        for i, decl in enumerate(sub_path):
            tag = self._tag(decl)
            is_leaf = i == len(sub_path) - 1
            existing = None if (is_leaf and new_leaf) else element.find(tag)
            element = existing if existing is not None else ET.SubElement(element, tag)
        return element


def load_bindings(paths: "list[str | Path]") -> list[SchemaBinding]:
    """Load schemas in order; later schemas take precedence."""
    bindings = []
    for path in paths:
        binding = SchemaBinding(path)
        logger.info(f"{binding.dialect.value.upper()} schema loaded: {binding.path}")
        bindings.append(binding)
    return bindings
