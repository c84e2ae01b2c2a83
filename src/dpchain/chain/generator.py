"""Request payload generation."""
import logging
from typing import Optional, Sequence

from .. import constants as C
from ..binding.xsd import SchemaBinding
from ..config.session import Verbosity
from .errors import SchemaNotFound
from .model import Operation

logger = logging.getLogger(__name__)


class PayloadGenerator:
    """Builds the request document for an operation from the loaded schemas."""

    def __init__(
        self,
        bindings: Sequence[SchemaBinding],
        default_domain: Optional[str] = None,
        verbosity: Optional[Verbosity] = None,
    ):
        self.bindings = list(bindings)
        self.default_domain = default_domain
        self.verbosity = verbosity or Verbosity()

    def find_binding(self, name: str) -> Optional[SchemaBinding]:
        """The last loaded schema declaring the operation."""
        found = None
        for binding in self.bindings:
            if binding.supports(name):
                found = binding
        return found

    def _set_domain(self, binding: SchemaBinding, operation: Operation, domain: str) -> None:
        if binding.accepts(C.DOMAIN_OPT_NAME):
            binding.set_value(C.DOMAIN_OPT_NAME, domain)
        if operation.is_amp and binding.accepts(C.DOMAIN_UCC_OPT_NAME):
            binding.set_value(C.DOMAIN_UCC_OPT_NAME, domain)

    def generate(self, operation: Operation) -> str:
        """Build and store the operation's payload.

        Raises:
            SchemaNotFound: if no loaded schema declares the operation
            GenerationError: if an option does not fit the document
        """
        name = operation.name
        logger.debug(f"Generating payload for {operation.invoked_name} ({name})")

        binding = self.find_binding(name)
        if binding is None:
            raise SchemaNotFound(name)
        operation.bind_endpoint(binding.dialect, binding.endpoint)

        binding.new_document()
        binding.set_target_node(name)
        binding.set_envelope()

        # Unqualified get-status reports object status, minus healthy objects
        if name == C.GET_STATUS_OP_NAME and operation.get_option_value(C.CLASS_OPT_NAME) is None:
            if C.EXPECTED_STATUS_RESPONSE not in (operation.filter_out or "").split("|"):
                operation.add_filter_out(C.EXPECTED_STATUS_RESPONSE)
            binding.set_value(C.CLASS_OPT_NAME, C.OBJECT_STATUS_OPT_VALUE)

        for option in operation.options:
            value = option.resolve_value()
            logger.debug(
                f"option : name={option.name}, value={self.verbosity.option_text(value)}"
            )
            if option.name == C.DOMAIN_OPT_NAME:
                operation.update_domain(value)
                self._set_domain(binding, operation, value)
            else:
                binding.set_value(option.name, value)

        # Session domain applies only when the operation names none
        if self.default_domain is not None and operation.domain is None:
            logger.debug(f"option : name=domain, value={self.default_domain}")
            self._set_domain(binding, operation, self.default_domain)

        payload = binding.serialize()
        operation.payload = payload
        logger.debug(f"{operation.invoked_name} payload:\n{self.verbosity.dump_text(payload)}")
        return payload
