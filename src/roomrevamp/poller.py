from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

import httpx

from .errors import ProviderError, TaskFailedError, TaskTimeoutError
from .images import as_image_url
from .logging import get_logger
from .types import AsyncTaskHandle, ImageOutcome

TaskQuery = Callable[[str], Dict[str, Any]]

SUCCEEDED = "SUCCEEDED"
FAILED_STATES = frozenset({"FAILED", "CANCELED"})


def as_dict(value: Any) -> Dict[str, Any]:
    """`value` if it is a JSON object, else an empty one."""
    return value if isinstance(value, dict) else {}


def first_dict(value: Any) -> Optional[Dict[str, Any]]:
    """First element of a JSON array when that element is an object."""
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return value[0]
    return None


def is_malformed(body: Any) -> bool:
    """True when a reply is not an object or carries a non-object `output`."""
    if not isinstance(body, dict):
        return True
    output = body.get("output")
    return output is not None and not isinstance(output, dict)


def task_status(body: Dict[str, Any]) -> str:
    output = as_dict(body.get("output"))
    status = output.get("task_status") or output.get("status") or body.get("status") or "UNKNOWN"
    return str(status).upper()


def task_image(body: Dict[str, Any]) -> Optional[str]:
    output = as_dict(body.get("output"))
    first = first_dict(output.get("results"))
    if first is not None:
        if first.get("url"):
            return as_image_url(str(first["url"]))
        for key in ("image", "base64", "b64_image"):
            if first.get(key):
                return as_image_url(str(first[key]))
    if isinstance(output.get("result_url"), str) and output["result_url"]:
        return as_image_url(output["result_url"])
    return None


def task_error(body: Dict[str, Any]) -> str:
    output = as_dict(body.get("output"))
    return str(output.get("message") or body.get("message") or output.get("code") or "task failed")


class AsyncTaskPoller:
    """
    Fixed-interval polling of a deferred provider task.

    Sleeps `interval_s` before every attempt; at most `max_attempts` status
    queries are made.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 30,
        interval_s: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_attempts = max_attempts
        self.interval_s = interval_s
        self._sleep = sleep
        self.log = get_logger(__name__)

    def poll(
        self,
        handle: AsyncTaskHandle,
        query: TaskQuery,
        *,
        max_attempts: Optional[int] = None,
        interval_s: Optional[float] = None,
    ) -> ImageOutcome:
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        interval = interval_s if interval_s is not None else self.interval_s
        last_status: Optional[str] = None

        for attempt in range(1, attempts + 1):
            self._sleep(interval)
            try:
                body = query(handle.task_id)
            except TaskFailedError:
                raise
            except (ProviderError, httpx.HTTPError) as e:
                if attempt == attempts:
                    raise
                self.log.warning(f"[poller] {handle.provider} task={handle.task_id} attempt {attempt} failed: {e}")
                continue

            if is_malformed(body):
                raise ProviderError(handle.provider, f"malformed reply for task {handle.task_id}")

            status = task_status(body)
            if status != last_status:
                self.log.info(f"[poller] {handle.provider} task={handle.task_id} status={status} attempt={attempt}")
                last_status = status

            if status == SUCCEEDED:
                image = task_image(body)
                if not image:
                    raise ProviderError(handle.provider, f"task {handle.task_id} succeeded without an image")
                return ImageOutcome(image_url=image, provider=handle.provider)

            if status in FAILED_STATES:
                raise TaskFailedError(handle.provider, f"task {handle.task_id} {status.lower()}: {task_error(body)}")

        raise TaskTimeoutError(
            handle.provider,
            f"task {handle.task_id} did not finish after {attempts} attempts",
        )
