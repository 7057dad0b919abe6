"""Poll a long-running engine job until it reaches a terminal state.

Every iteration waits one interval, then asks the status source for the
job's state. The loop returns only on an explicit completed/failed answer
or once the elapsed time passes the maximum wait (EXECUTION_TIMEOUT).
Status-source failures are logged and polled through; the overall timeout
bounds them.
"""

import logging
import time
from typing import Any, Callable, Optional, Protocol

from src.agents.schemas import OutputSchemaType
from src.executor.cancellation import CancellationToken, SleepFunc, cancellable_sleep
from src.executor.errors import ErrorCode, ExecutionBaseError, ExecutionTimeoutError, parse_error
from src.executor.output_parser import BlobStore, parse_output
from src.executor.schemas import (
    ExecutionError,
    ExecutionStatus,
    PollResult,
    WebhookResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_POLLING_INTERVAL_MS = 5000


class StatusSource(Protocol):
    """Anything that can report the state of an engine job."""

    async def get_execution_status(
        self, execution_id: str, poll_url: Optional[str] = None
    ) -> WebhookResponse: ...


def failed_result(message: str, details: Any = None) -> PollResult:
    return PollResult(
        status=ExecutionStatus.FAILED,
        error=ExecutionError(
            code=ErrorCode.EXECUTION_FAILED.value,
            message=message,
            details=details,
        ),
    )


def terminal_result(
    response: WebhookResponse,
    output_type: OutputSchemaType,
    blob_store: Optional[BlobStore] = None,
) -> Optional[PollResult]:
    """Terminal PollResult for a response, or None if the job is still running."""
    if response.is_failed:
        return failed_result(
            response.message or "Workflow execution failed",
            details=response.model_dump(by_alias=True, exclude_none=True),
        )
    if response.has_data:
        return PollResult(
            status=ExecutionStatus.COMPLETED,
            output=parse_output(
                response.data, output_type, blob_store, metadata=response.metadata
            ),
        )
    if response.is_completed:
        # Completed with an empty result is still a finished job
        return PollResult(
            status=ExecutionStatus.COMPLETED,
            output=parse_output(None, output_type, blob_store, metadata=response.metadata),
        )
    return None


async def poll_for_result(
    execution_id: str,
    max_wait_ms: int,
    interval_ms: int,
    initial_response: WebhookResponse,
    status_source: StatusSource,
    output_type: OutputSchemaType,
    *,
    blob_store: Optional[BlobStore] = None,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Optional[SleepFunc] = None,
    clock: Callable[[], float] = time.monotonic,
) -> PollResult:
    """Wait for a long-running job to finish.

    Args:
        execution_id: Local execution id (used when the engine gave none)
        max_wait_ms: Upper bound on total polling time
        interval_ms: Delay before each status check
        initial_response: The trigger response; returned as-is if it
            already carries result data
        status_source: Queried once per iteration
        output_type: The agent's declared output type
        cancel_token: Stops the loop when the execution is cleared
        sleep: Awaitable sleep(seconds) replacing the real wait (tests)
        clock: Monotonic clock in seconds

    Returns:
        PollResult with status completed or failed

    Raises:
        asyncio.CancelledError: if cancel_token was cancelled
    """
    if initial_response.has_data:
        return terminal_result(initial_response, output_type, blob_store)

    remote_id = initial_response.execution_id or execution_id
    poll_url = initial_response.poll_url
    interval_s = max(interval_ms, 0) / 1000
    started = clock()
    attempt = 0

    logger.info(
        f"Polling execution {execution_id} (engine id {remote_id}) every "
        f"{interval_ms}ms for up to {max_wait_ms}ms"
    )

    while (clock() - started) * 1000 < max_wait_ms:
        await cancellable_sleep(interval_s, cancel_token, sleep)
        attempt += 1

        try:
            response = await status_source.get_execution_status(remote_id, poll_url)
        except ExecutionBaseError as e:
            parsed = parse_error(e)
            logger.warning(
                f"Poll {attempt} for {execution_id} failed ({parsed.code}: {parsed.message}), "
                f"continuing"
            )
            continue

        result = terminal_result(response, output_type, blob_store)
        if result is not None:
            logger.info(
                f"Execution {execution_id} reached {result.status.value} after {attempt} poll(s)"
            )
            return result
        logger.debug(f"Poll {attempt} for {execution_id}: still {response.status or 'running'}")

    timeout = ExecutionTimeoutError(execution_id, max_wait_ms)
    logger.warning(f"{timeout.message} ({attempt} poll(s))")
    return PollResult(status=ExecutionStatus.FAILED, error=timeout.to_execution_error())
