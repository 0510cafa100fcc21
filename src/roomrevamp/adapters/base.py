from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import httpx

from ..errors import ProviderError
from ..logging import get_logger
from ..types import AdapterDescriptor, Capability, ComposedInstruction, RawProviderReply


class ProviderAdapter:
    """
    One external service behind a single wire protocol.

    Subclasses set `descriptor` and implement `invoke`. Adapters raise
    ProviderError on any failure and never substitute placeholders.
    """

    descriptor: AdapterDescriptor

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "",
        timeout_s: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        priority: Optional[int] = None,
    ):
        self.log = get_logger(__name__)
        self.api_key = api_key
        self.timeout_s = timeout_s
        if priority is not None:
            d = self.descriptor
            self.descriptor = AdapterDescriptor(id=d.id, label=d.label, capabilities=d.capabilities, priority=priority)
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=self.headers(),
            timeout=timeout_s,
            follow_redirects=True,
            transport=transport,
        )

    @property
    def id(self) -> str:
        return self.descriptor.id

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def close(self) -> None:
        self._client.close()

    def supports(self, stage: int) -> Optional[Capability]:
        caps = self.descriptor.capabilities
        if stage == 1:
            return Capability.TEXT_ANALYSIS if Capability.TEXT_ANALYSIS in caps else None
        if Capability.IMAGE_EDIT in caps:
            return Capability.IMAGE_EDIT
        if Capability.TEXT_TO_IMAGE_ONLY in caps:
            return Capability.TEXT_TO_IMAGE_ONLY
        return None

    def invoke(self, stage: int, image_bytes: bytes, instruction: ComposedInstruction) -> RawProviderReply:
        raise NotImplementedError

    def fetch_task(self, task_id: str) -> Dict[str, Any]:
        raise ProviderError(self.id, "adapter does not support async tasks")

    def _request(
        self,
        method: str,
        url: str,
        *,
        json: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            r = self._client.request(method, url, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderError(self.id, f"request timed out after {self.timeout_s}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.id, f"request failed: {e}") from e

        if r.status_code >= 400:
            raise ProviderError(self.id, _error_message(r), http_status=r.status_code)

        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError(self.id, "reply is not valid JSON", http_status=r.status_code) from e
        if not isinstance(data, dict):
            raise ProviderError(self.id, f"unexpected reply type: {type(data).__name__}", http_status=r.status_code)
        return data

    def _post(self, url: str, payload: Mapping[str, Any], *, headers: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        return self._request("POST", url, json=payload, headers=headers)


def _error_message(r: httpx.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return r.text[:500] or r.reason_phrase
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        for key in ("message", "error", "name"):
            if data.get(key):
                return str(data[key])
    return r.text[:500]
