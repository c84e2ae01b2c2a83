"""Deployment session: the driver for building and running a chain.

Usage:
    session = DeploymentSession(SessionConfig(host="dp-dev-01", domain="SANDBOX"))
    session.set_rollback_on_error(True)
    op = session.create_operation("set-file")
    op.add_option("srcFile", "build/transform.xsl")
    op.add_option("destFile", "local:///transform.xsl")
    session.create_operation("SaveConfig")
    result = await session.run()
    sys.exit(result.exit_code)
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..binding import dialects
from ..binding.xsd import SchemaBinding, load_bindings
from ..config.credentials import resolve_credentials
from ..config.deployment import Deployment
from ..config.session import SessionConfig
from ..protocol.classifier import ResponseClassifier
from ..protocol.transport import XmlManagementTransport
from ..utils.audit_log import AuditTrail
from .cancel import CancelToken
from .checkpoint import CheckpointManager
from .custom_ops import build_operation
from .dispatch import OperationDispatcher, Transport
from .errors import EXIT_SUCCESS, ChainError, ChainRolledBack, ConfigError, SchemaNotFound
from .executor import ChainExecutor
from .generator import PayloadGenerator
from .model import ExecuteResult, Operation, OperationChain
from .poller import Sleeper
from .policy import ErrorPolicy

logger = logging.getLogger(__name__)


class DeploymentSession:
    """One appliance, one chain, one execution at a time."""

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        transport: Optional[Transport] = None,
        bindings: Optional[list[SchemaBinding]] = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Optional[Sleeper] = None,
        cancel_token: Optional[CancelToken] = None,
    ):
        self.config = config or SessionConfig()
        self.chain = OperationChain()
        self.cancel_token = cancel_token or CancelToken()
        self.policy = ErrorPolicy(
            fail_on_error=self.config.fail_on_error,
            abort_threshold=self.config.abort_threshold,
        )
        self.checkpoints = CheckpointManager(self.chain, self.policy, clock=clock)
        self._transport = transport
        self._bindings = bindings
        self._bindings_injected = bindings is not None
        self._sleep = sleep
        self.dispatcher: Optional[OperationDispatcher] = None
        if self.config.rollback_on_error:
            self.set_rollback_on_error(True)

    # === Building the chain ===

    def new_operation(self, name: str) -> Operation:
        """Create an operation without adding it to the chain."""
        return build_operation(name)

    def create_operation(self, name: str) -> Operation:
        """Create an operation and append it to the chain."""
        operation = build_operation(name)
        self.chain.append(operation)
        return operation

    def add_operation(self, operation: Operation) -> None:
        self.chain.append(operation)

    def set_rollback_on_error(self, enable: bool) -> None:
        """Save a checkpoint first and roll back to it on a fatal response."""
        self.config.rollback_on_error = enable
        if enable:
            self.checkpoints.enable()
            self.config.fail_on_error = True
        else:
            self.checkpoints.disable()

    def set_global_option(self, name: str, value) -> None:
        """Apply a session option by name (see SessionConfig.set_global_option)."""
        self.config.set_global_option(name, value)
        key = name.strip().lower()
        if key == "rollbackonerror":
            self.set_rollback_on_error(self.config.rollback_on_error)
        elif key == "failonerror":
            self.policy.fail_on_error = self.config.fail_on_error or self.checkpoints.active
        elif key == "abortthreshold":
            self.policy.abort_threshold = self.config.abort_threshold
        elif key in ("firmware", "firmwarelevel", "schema", "schemadir") and not self._bindings_injected:
            self._bindings = None

    def apply_deployment(self, deployment: Deployment) -> None:
        """Apply a deployment's global options and append its operations."""
        for name, value in deployment.global_options.items():
            self.set_global_option(name.replace("_", ""), value)
        for spec in deployment.operations:
            operation = self.create_operation(spec.name)
            for option in spec.options:
                if option.src_file is not None:
                    operation.add_option(option.name, option.value, source_file=option.src_file)
                elif option.name == "domain":
                    operation.set_domain(option.value)
                else:
                    operation.add_option(option.name, option.value)

    # === Schemas ===

    def schema_paths(self) -> list[Path]:
        """Schema files to load, lowest precedence first."""
        if self.config.schema_paths:
            return [Path(p) for p in self.config.schema_paths]

        root = Path(self.config.schema_dir) if self.config.schema_dir else dialects.SCHEMAS_DIR
        directory = dialects.schema_directory(self.config.firmware, root)
        if (
            self.config.firmware
            and self.config.firmware_level >= 3
            and directory.name != self.config.firmware
        ):
            logger.warning(
                f"No schemas for firmware '{self.config.firmware}' under {root}, using {directory}"
            )

        paths = [
            directory / name
            for name in dialects.SCHEMA_LOAD_ORDER
            if (directory / name).is_file()
        ]
        if not paths:
            raise ConfigError(f"No management schemas found in {directory}")
        return paths

    def load_schemas(self) -> list[SchemaBinding]:
        if self._bindings is None:
            self._bindings = load_bindings(self.schema_paths())
        return self._bindings

    def describe(self, name: str) -> dict:
        """Fields accepted by an operation, from the schema that would bind it."""
        operation = build_operation(name)
        generator = PayloadGenerator(self.load_schemas())
        binding = generator.find_binding(operation.name)
        if binding is None:
            raise SchemaNotFound(operation.name)
        info = binding.describe(operation.name)
        if operation.is_composite:
            info["composite"] = name
        return info

    # === Execution ===

    def _build_transport(self) -> XmlManagementTransport:
        if not self.config.host:
            raise ConfigError("No hostName configured")
        credentials = resolve_credentials(
            self.config.host,
            self.config.username,
            self.config.password,
            self.config.netrc_path,
        )
        return XmlManagementTransport(
            host=self.config.host,
            port=self.config.port,
            credentials=credentials,
            verify_ssl=self.config.verify_ssl,
            timeout=self.config.timeout,
            retries=self.config.retries,
            cancel_token=self.cancel_token,
        )

    async def execute(self) -> ExecuteResult:
        """Execute the chain.

        Raises:
            ChainError: whatever ended the chain early
        """
        if len(self.chain) == 0:
            raise ConfigError("No operations to execute")

        verbosity = self.config.verbosity
        generator = PayloadGenerator(
            self.load_schemas(), default_domain=self.config.domain, verbosity=verbosity
        )
        owns_transport = self._transport is None
        transport = self._transport or self._build_transport()

        self.dispatcher = OperationDispatcher(
            chain=self.chain,
            generator=generator,
            transport=transport,
            classifier=ResponseClassifier(self.config.output_type),
            policy=self.policy,
            verbosity=verbosity,
            audit=AuditTrail(self.config.host),
            log_output=self.config.log_output,
        )
        executor = ChainExecutor(
            self.chain,
            self.dispatcher,
            self.policy,
            self.checkpoints,
            cancel_token=self.cancel_token,
            sleep=self._sleep,
        )
        checkpoint = self.checkpoints.name
        logger.info(
            f"Executing {len(self.chain)} operation(s) against "
            f"{self.config.host or 'appliance'}:{self.config.port}"
        )
        try:
            await executor.execute()
        finally:
            if owns_transport:
                await transport.aclose()
                if verbosity.debug:
                    logger.debug(transport.timings.summary())

        return self._result(success=True, exit_code=EXIT_SUCCESS, checkpoint=checkpoint)

    async def run(self) -> ExecuteResult:
        """Execute and map any ChainError to an exit code. Never raises ChainError."""
        checkpoint = self.checkpoints.name
        try:
            result = await self.execute()
        except ChainError as e:
            logger.error(f"Execution stopped: {e.message}")
            logger.debug("Execution stopped by", exc_info=True)
            return self._result(
                success=False,
                exit_code=e.exit_code,
                checkpoint=checkpoint,
                rolled_back=isinstance(e, ChainRolledBack),
                error=e.message,
            )
        logger.info(f"Execution complete: {len(result.operations_posted)} operation(s) posted")
        return result

    def _result(self, **kwargs) -> ExecuteResult:
        result = ExecuteResult(**kwargs)
        if self.dispatcher is not None:
            result.operations_posted = list(self.dispatcher.posted)
            result.operations_removed = list(self.dispatcher.removed)
            result.warnings = list(self.dispatcher.warnings)
        return result
