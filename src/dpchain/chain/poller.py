"""Polling an operation until its response shows a wanted state."""
import logging
import re
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from ..protocol.xpath import compile_xpath, evaluate_xpath
from .errors import ClassificationError, PollPredicateInvalid, PollTimeout
from .model import Classification, Operation, Severity

if TYPE_CHECKING:
    from .executor import ChainExecutor

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


def wait_for_pattern(literal: str) -> re.Pattern:
    """Match the literal in lower, UPPER or Capitalized form only."""
    lower = literal.lower()
    upper = literal.upper()
    capital = upper[:1] + lower[1:]
    variants = dict.fromkeys((lower, upper, capital))
    return re.compile("|".join(re.escape(v) for v in variants))


class PollEngine:
    """Re-posts an operation until it matches waitFor / waitForXPath.

    The time budget is consumed in whole seconds per poll:
    ``remaining = waitTime - polls * (pollIntMillis // 1000)``, with
    sub-second intervals counted as one second. Between polls the engine
    sleeps the exact interval through ``sleep`` (an interruptible sleep by
    default); there is no sleep after the last poll.

    Only a timeout is judged by the error policy and may roll back. An
    invalid XPath or an unparseable response ends polling with a typed
    error that the executor handles like any other operation error.
    """

    def __init__(self, executor: "ChainExecutor", sleep: Sleeper):
        self.executor = executor
        self.sleep = sleep

    async def poll(self, operation: Operation) -> bool:
        """Poll until matched or out of time. Returns whether it matched.

        Raises:
            PollPredicateInvalid: if waitForXPath does not compile
            ClassificationError: if a poll response cannot be parsed
            PollTimeout: through the error policy, when running fail-fast
        """
        dispatcher = self.executor.dispatcher
        pattern: Optional[re.Pattern] = None
        compiled = None

        if operation.wait_for is not None:
            pattern = wait_for_pattern(operation.wait_for)
        elif operation.wait_for_xpath is not None:
            try:
                compiled = compile_xpath(operation.wait_for_xpath)
            except PollPredicateInvalid as e:
                raise PollPredicateInvalid(e.message, operation.invoked_name) from e

        wait_time = operation.wait_time_seconds
        interval_seconds = max(1, operation.poll_interval_millis // 1000)
        remaining = wait_time
        polls = 0
        matched = False

        while not matched and remaining > 0:
            self.executor.cancel_token.raise_if_cancelled(operation.invoked_name)
            raw = await dispatcher.generate_and_post(operation)
            if raw is None:
                return False

            try:
                classification = await self.executor.process_response(operation)
            except ClassificationError as e:
                raise ClassificationError(
                    f"Failed to parse DP response. {e.message}", operation.invoked_name
                ) from e

            if pattern is not None:
                matched = pattern.search(classification.message) is not None
            else:
                matched = evaluate_xpath(compiled, raw)

            polls += 1
            remaining = wait_time - polls * interval_seconds
            logger.debug(
                f"{operation.invoked_name}: poll {polls}, matched={matched}, {max(remaining, 0)}s remaining"
            )
            if not matched and remaining > 0:
                await self.sleep(operation.poll_interval_millis / 1000)

        if matched:
            logger.info(f"{operation.invoked_name}: wait condition met after {polls} poll(s)")
            return True

        condition = (
            f"the required '{operation.wait_for}'"
            if operation.wait_for is not None
            else f"matching XPath '{operation.wait_for_xpath}'"
        )
        message = f"Failed to receive {condition} response within {wait_time} seconds."
        if self.executor.policy.fail_on_error:
            await self.executor.apply_severity(
                operation,
                Classification(Severity.FATAL, message),
                error=PollTimeout(message, Severity.FATAL, operation.invoked_name),
            )
        else:
            dispatcher.log_warning(operation, message)
        return False
