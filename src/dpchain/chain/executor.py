"""Chain execution: prebuild, post in order, apply the error policy."""
import logging
from typing import Optional

from .cancel import CancelToken
from .checkpoint import CheckpointManager
from .dispatch import OperationDispatcher
from .errors import (
    ChainCancelled,
    ChainError,
    ChainRolledBack,
    ResponseSeverityError,
    RollbackFailure,
)
from .model import Classification, Operation, OperationChain
from .poller import PollEngine, Sleeper
from .policy import Decision, ErrorPolicy

logger = logging.getLogger(__name__)

# Never contained to the operation that raised them
TERMINAL_ERRORS = (ResponseSeverityError, RollbackFailure, ChainRolledBack, ChainCancelled)


class ChainExecutor:
    """Runs one operation chain against one appliance."""

    def __init__(
        self,
        chain: OperationChain,
        dispatcher: OperationDispatcher,
        policy: ErrorPolicy,
        checkpoints: CheckpointManager,
        cancel_token: Optional[CancelToken] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.chain = chain
        self.dispatcher = dispatcher
        self.policy = policy
        self.checkpoints = checkpoints
        self.cancel_token = cancel_token or CancelToken()
        self.poller = PollEngine(self, sleep or self.cancel_token.sleep)

    def prebuild(self) -> None:
        """Generate payloads up front, except memory-safe and composite operations."""
        for operation in self.chain.walk():
            if operation.mem_safe or operation.is_composite:
                continue
            self.dispatcher.generate(operation)

    async def execute(self) -> None:
        """Run the whole chain.

        Raises:
            ChainError: any error that ends the chain
        """
        self.dispatcher.checkpoint = self.checkpoints.name
        self.prebuild()
        for operation in self.chain.walk():
            await self.run_operation(operation)

        if self.checkpoints.active:
            await self.checkpoints.remove(self.dispatcher)

    async def run_operation(self, operation: Operation) -> None:
        """Post one operation (or expand it, or poll it)."""
        self.cancel_token.raise_if_cancelled(operation.invoked_name)
        try:
            if operation.is_composite:
                await operation.hook.intercept_post(self)
            elif operation.is_polling:
                await self.poller.poll(operation)
            else:
                if operation.mem_safe or operation.payload is None:
                    if self.dispatcher.generate(operation) is None:
                        return
                await self.dispatcher.post(operation)
                await self.process_response(operation)
        except TERMINAL_ERRORS:
            raise
        except ChainError as e:
            logger.error(f"{operation.invoked_name}: {e.message}")
            if self.policy.fail_on_error:
                raise
        finally:
            if operation.mem_safe:
                operation.reset_payload()

    async def process_response(self, operation: Operation) -> Classification:
        """Classify the operation's response and apply the error policy."""
        classification = self.dispatcher.classify(operation)
        await self.apply_severity(operation, classification)
        return classification

    async def apply_severity(
        self,
        operation: Operation,
        classification: Classification,
        error: Optional[ChainError] = None,
    ) -> None:
        """Continue, warn, roll back or abort for a classified outcome.

        Raises:
            ResponseSeverityError (or ``error``): when the policy aborts
            ChainRolledBack, RollbackFailure: when the policy rolls back
        """
        decision = self.policy.decide(
            classification.severity, operation, self.checkpoints.active
        )
        if decision is Decision.CONTINUE:
            return
        if decision is Decision.WARN:
            self.dispatcher.log_warning(operation, classification.message)
            return
        if decision is Decision.ROLLBACK:
            await self.checkpoints.rollback(self.dispatcher, operation, classification.message)

        self.dispatcher.log_error(operation, classification.message)
        raise error or ResponseSeverityError(
            classification.message, classification.severity, operation=operation.invoked_name
        )
