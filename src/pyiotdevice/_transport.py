"""HTTP transport for the control-plane JSON API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pyiotdevice._constants import USER_AGENT
from pyiotdevice._redact import redact_for_log
from pyiotdevice.config import IotConfig
from pyiotdevice.exceptions import IotApiError, IotTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`ControlPlaneTransport`) concrete.
    """

    async def request_json(
        self,
        method: str,
        endpoint: str,
        payload: Mapping[str, Any] | None = None,
        *,
        params: Mapping[str, str] | None = None,
    ) -> dict[str, Any]: ...


class ControlPlaneTransport:
    """JSON-over-HTTP transport with optional bearer authentication."""

    def __init__(self, config: IotConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }
        if self._config.api_token:
            headers["authorization"] = f"Bearer {self._config.api_token}"
        return headers

    async def request_json(
        self,
        method: str,
        endpoint: str,
        payload: Mapping[str, Any] | None = None,
        *,
        params: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        """Send a JSON request and return the decoded JSON object.

        An empty 2xx body decodes to ``{}``.

        Raises
        ------
        IotTransportError
            On network failure, a non-JSON body, or a non-2xx status with no
            error document.
        IotApiError
            On a non-2xx status that carries an error document.
        """
        url = f"{self._config.control_plane_url.rstrip('/')}{endpoint}"
        body = json.dumps(payload) if payload is not None else None

        _logger.debug("%s %s payload=%s", method, url, redact_for_log(payload))

        try:
            async with self._http.request(method, url, data=body, params=params, headers=self._headers()) as resp:
                status = resp.status
                text = await resp.text()
        except aiohttp.ClientError as exc:
            raise IotTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        document: Any = {}
        if text.strip():
            try:
                document = json.loads(text)
            except json.JSONDecodeError as exc:
                raise IotTransportError(
                    f"Invalid JSON from {endpoint} (HTTP {status}): {text[:200]}",
                    status_code=status,
                    endpoint=endpoint,
                ) from exc

        _logger.debug("HTTP %s from %s body=%s", status, endpoint, redact_for_log(document))

        if not 200 <= status < 300:
            if isinstance(document, dict) and ("message" in document or "code" in document):
                raise IotApiError(
                    f"{endpoint} failed: {document.get('message', '')}",
                    code=str(document.get("code") or status),
                    endpoint=endpoint,
                )
            raise IotTransportError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )

        if not isinstance(document, dict):
            raise IotTransportError(
                f"Response from {endpoint} is not a JSON object",
                status_code=status,
                endpoint=endpoint,
            )
        return document
