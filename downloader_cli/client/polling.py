"""Client-side polling loop for job status"""

import time
from collections.abc import Callable
from typing import Any

TERMINAL_STATUSES = frozenset({"completed", "failed"})


class PollingTimeoutError(Exception):
    """Raised when a job does not reach a terminal status in time"""

    def __init__(self, job_id: str, last_status: dict[str, Any] | None):
        self.job_id = job_id
        self.last_status = last_status
        super().__init__(f"Job {job_id} did not finish in time")


def poll_job_status(
    job_id: str,
    fetch: Callable[[str], dict[str, Any]],
    interval: float = 2.0,
    timeout: float | None = None,
    on_update: Callable[[dict[str, Any]], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> dict[str, Any]:
    """
    Fetch a job's status at a fixed interval until it is terminal.

    The first fetch happens immediately; polling stops as soon as a
    ``completed`` or ``failed`` status is observed.

    Args:
        job_id: Job to poll
        fetch: Returns the status payload for a job id
        interval: Seconds between fetches
        timeout: Give up after this many seconds (None waits forever)
        on_update: Called with every fetched status
        sleep: Sleep function (injectable for tests)
        clock: Monotonic clock (injectable for tests)

    Returns:
        The terminal status payload

    Raises:
        PollingTimeoutError: timeout elapsed before a terminal status
    """
    deadline = None if timeout is None else clock() + timeout
    last_status = None

    while True:
        last_status = fetch(job_id)
        if on_update is not None:
            on_update(last_status)

        if last_status.get("status") in TERMINAL_STATUSES:
            return last_status

        if deadline is not None and clock() + interval > deadline:
            raise PollingTimeoutError(job_id, last_status)

        sleep(interval)
