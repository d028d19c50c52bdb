"""Firestore REST transport built on aiohttp."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import aiohttp

from drivertrack._constants import USER_AGENT
from drivertrack._redact import redact_for_log
from drivertrack.config import TrackerConfig
from drivertrack.exceptions import RemoteWriteError

_logger = logging.getLogger(__name__)


class DocumentTransport(Protocol):
    """Structural transport interface used by :class:`UpstreamSync`.

    Lets tests pass small fakes while production uses
    :class:`FirestoreTransport`.
    """

    def document_name(self, *segments: str) -> str:
        ...

    async def commit(self, writes: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        ...


def _error_message(text: str) -> str:
    """Pull ``error.status: error.message`` out of a Google API error body."""
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        return text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        status = error.get("status") or error.get("code") or ""
        return f"{status}: {error.get('message', '')}".strip()
    return text[:200]


class FirestoreTransport:
    """Commits document writes through the Firestore ``documents:commit`` endpoint."""

    def __init__(self, config: TrackerConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._commit_url = f"{config.base_url.rstrip('/')}/v1/{config.documents_path}:commit"
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    @property
    def commit_url(self) -> str:
        return self._commit_url

    def document_name(self, *segments: str) -> str:
        """Full resource name for a document path given as segments."""
        return "/".join((self._config.documents_path, *segments))

    def _headers(self) -> dict[str, str]:
        headers = {
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }
        if self._config.access_token:
            headers["authorization"] = f"Bearer {self._config.access_token}"
        return headers

    def _params(self) -> dict[str, str]:
        if self._config.api_key:
            return {"key": self._config.api_key}
        return {}

    async def commit(self, writes: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        """Apply *writes* atomically and return the decoded commit response."""
        document = ""
        if writes:
            update = writes[0].get("update")
            if isinstance(update, Mapping):
                document = str(update.get("name", ""))

        body = json.dumps({"writes": list(writes)}, separators=(",", ":"))
        _logger.debug("POST %s writes=%s", self._commit_url, redact_for_log(list(writes)))

        try:
            async with self._http.post(
                self._commit_url,
                data=body,
                headers=self._headers(),
                params=self._params(),
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise RemoteWriteError(
                        f"HTTP {resp.status} committing {redact_for_log({'name': document})['name']}: "
                        f"{_error_message(text)}",
                        status_code=resp.status,
                        document=document,
                    )
        except RemoteWriteError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise RemoteWriteError(f"Commit request failed: {exc!r}", document=document) from exc

        try:
            result = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RemoteWriteError(f"Invalid JSON from commit: {text[:200]}", document=document) from exc
        if not isinstance(result, dict):
            raise RemoteWriteError("Commit response is not a JSON object", document=document)
        return result
