"""Checkpoint save, rollback and removal around a deployment."""
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, NoReturn, Optional

from .. import constants as C
from .errors import ChainRolledBack, ClassificationError, GenerationError, RollbackFailure, SchemaNotFound
from .model import Operation, OperationChain
from .policy import ErrorPolicy

if TYPE_CHECKING:
    from .dispatch import OperationDispatcher

logger = logging.getLogger(__name__)

CHECKPOINT_PREFIX = "CP"
CHECKPOINT_TIME_FORMAT = "%Y%m%d%H%M%S"


class CheckpointManager:
    """Owns the (at most one) checkpoint of an execution."""

    def __init__(
        self,
        chain: OperationChain,
        policy: ErrorPolicy,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.chain = chain
        self.policy = policy
        self.clock = clock
        self.name: Optional[str] = None
        self._save_operation: Optional[Operation] = None

    @property
    def active(self) -> bool:
        return self.name is not None

    def new_name(self) -> str:
        return CHECKPOINT_PREFIX + self.clock().strftime(CHECKPOINT_TIME_FORMAT)

    def _checkpoint_operation(self, name: str) -> Operation:
        operation = Operation(name=name)
        operation.add_option(C.CHK_NAME_OPT_NAME, self.name)
        return operation

    def enable(self) -> str:
        """Save a checkpoint before the chain runs.

        Inserts SaveCheckpoint at the head of the chain and forces fail-fast.
        Enabling twice keeps the first checkpoint.
        """
        if self.name is None:
            self.name = self.new_name()
            self._save_operation = self._checkpoint_operation(C.SAVE_CHECKPOINT_OP_NAME)
            self.chain.insert(0, self._save_operation)
            logger.info(f"Rollback on error enabled, checkpoint {self.name}")
        self.policy.fail_on_error = True
        return self.name

    def disable(self) -> None:
        if self._save_operation is not None:
            self.chain.remove(self._save_operation)
        self._save_operation = None
        self.name = None

    async def rollback(
        self, dispatcher: "OperationDispatcher", failed: Operation, cause: str
    ) -> NoReturn:
        """Roll the appliance back to the checkpoint.

        Raises:
            ChainRolledBack: the rollback succeeded (checkpoint then removed)
            RollbackFailure: the rollback failed; the checkpoint is left in place
        """
        name = self.name
        logger.warning(f"errorResponse={cause}")
        logger.warning(f"operation response={dispatcher.verbosity.dump_text(failed.response)}")
        logger.info(f"Deployment Error... attempting rollback to checkpoint {name}")

        rollback = self._checkpoint_operation(C.ROLLBACK_CHECKPOINT_OP_NAME)
        success = False
        try:
            if await dispatcher.generate_and_post(rollback) is not None:
                success = dispatcher.classify(rollback, handle_errors=False).success
        except (SchemaNotFound, GenerationError, ClassificationError) as e:
            logger.warning(f"Rollback to {name} failed: {e.message}")

        if not success:
            logger.error("Rollback was UNSUCCESSFUL!")
            raise RollbackFailure(name, cause, operation=failed.invoked_name)

        await self.remove(dispatcher)
        logger.info("Rollback was successful.")
        raise ChainRolledBack(name, cause, operation=failed.invoked_name)

    async def remove(self, dispatcher: "OperationDispatcher") -> bool:
        """Remove the checkpoint from the appliance. Returns success."""
        if self.name is None:
            return False
        remove = self._checkpoint_operation(C.REMOVE_CHECKPOINT_OP_NAME)
        success = False
        try:
            if await dispatcher.generate_and_post(remove) is not None:
                success = dispatcher.classify(remove, handle_errors=False).success
        except (SchemaNotFound, GenerationError, ClassificationError) as e:
            logger.warning(f"Failed to remove checkpoint {self.name}: {e.message}")

        if success:
            logger.info(f"Checkpoint {self.name} removed")
            self.name = None
            dispatcher.checkpoint = None
        else:
            logger.warning(f"Checkpoint {self.name} was not removed")
        return success
