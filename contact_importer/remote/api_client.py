"""httpx based client for the contact and list endpoints."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from ..errors import RowSubmissionError
from .base import Contact

LOGGER = logging.getLogger(__name__)

UPSERT_PATH = "/api/contacts.upsert"
SUBSCRIBE_PATH = "/api/lists.subscribe"


class HttpContactWriter:
    """Sends contacts to the platform API, one request per contact."""

    name = "http"

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def upsert(self, workspace_id: str, contact: Contact) -> None:
        await self._post(UPSERT_PATH, {"workspace_id": workspace_id, "contact": contact})

    async def subscribe(self, workspace_id: str, contact: Contact, list_ids: Sequence[str]) -> None:
        await self._post(
            SUBSCRIBE_PATH,
            {"workspace_id": workspace_id, "contact": contact, "list_ids": list(list_ids)},
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> None:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.TimeoutException as exc:
            raise RowSubmissionError(f"Request to {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise RowSubmissionError(f"Request to {path} failed: {exc}") from exc

        if response.is_success:
            return
        raise RowSubmissionError(_error_message(response), status_code=response.status_code)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpContactWriter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()


__all__ = ["HttpContactWriter", "SUBSCRIBE_PATH", "UPSERT_PATH"]
