from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class RoomRevampError(RuntimeError):
    """Base class for every error raised by the orchestration core."""

    api_status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(RoomRevampError):
    """Bad or missing request fields. Never retried."""

    api_status = 400


class ProviderError(RoomRevampError):
    """A provider call failed: non-2xx, transport error or malformed reply."""

    api_status = 502

    def __init__(self, provider: str, message: str, *, http_status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.http_status = http_status

    def __str__(self) -> str:
        if self.http_status is not None:
            return f"{self.provider}: HTTP {self.http_status}: {self.message}"
        return f"{self.provider}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "provider": self.provider,
            "http_status": self.http_status,
        }


class TaskFailedError(ProviderError):
    """An async provider task reached a terminal failure state."""


class TaskTimeoutError(ProviderError):
    """An async provider task did not finish within the attempt budget."""


class NoProviderConfiguredError(RoomRevampError):
    """No adapter is registered, or none is capable of the requested stage."""

    def __init__(self, stage: int, message: Optional[str] = None):
        super().__init__(message or f"No provider configured for stage {stage}")
        self.stage = stage


class ChainExhaustedError(RoomRevampError):
    """Every candidate adapter failed for one stage invocation."""

    def __init__(self, stage: int, failures: Sequence[ProviderError]):
        self.stage = stage
        self.failures: List[ProviderError] = list(failures)
        super().__init__(self.summary())

    def summary(self) -> str:
        if not self.failures:
            return f"All providers failed for stage {self.stage}"
        return "All providers failed: " + "; ".join(str(f) for f in self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "failures": [f.to_dict() for f in self.failures],
        }
