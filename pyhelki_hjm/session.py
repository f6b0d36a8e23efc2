import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import aiohttp

from .config import HelkiConfig
from .exceptions import HelkiAPIError, HelkiNetworkError

_LOGGER = logging.getLogger(__name__)

_REDACTED = "***"
_SECRET_FIELDS = {"password", "access_token", "refresh_token", "token"}
_SECRET_HEADERS = {"authorization"}


class _HttpLogger:
    """Request/response file log, enabled with HJM_HTTP_LOG_FILE."""

    def __init__(self, log_file: str):
        self._logger = logging.getLogger("pyhelki_hjm.http")
        path = os.path.abspath(log_file)
        if not any(
            getattr(h, "baseFilename", None) == path for h in self._logger.handlers
        ):
            handler = logging.FileHandler(path)
            formatter = logging.Formatter(
                "%(asctime)s %(levelname)s %(message)s"
            )
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)
            self._logger.setLevel(logging.INFO)

        self._log_headers = os.getenv("HJM_HTTP_LOG_HEADERS", "false").lower() == "true"
        self._log_body = os.getenv("HJM_HTTP_LOG_BODY", "true").lower() == "true"

    @staticmethod
    def _redact(value: Any) -> Any:
        if isinstance(value, dict):
            return {
                k: (_REDACTED if str(k).lower() in _SECRET_FIELDS else v)
                for k, v in value.items()
            }
        return value

    def _format_body(self, body: Any) -> str | None:
        if not self._log_body or body is None:
            return None
        try:
            return json.dumps(self._redact(body), ensure_ascii=False)
        except (TypeError, ValueError):
            return str(self._redact(body))

    def _format_headers(self, headers: dict | None) -> dict | None:
        if not self._log_headers or not headers:
            return None
        return {
            k: (_REDACTED if k.lower() in _SECRET_HEADERS else v)
            for k, v in headers.items()
        }

    def log_request(self, method: str, url: str, headers: dict | None, body: Any) -> None:
        headers = self._format_headers(headers)
        if headers:
            self._logger.info(
                "REQUEST: %s %s headers=%s body=%s",
                method, url, headers, self._format_body(body),
            )
        else:
            self._logger.info("REQUEST: %s %s body=%s", method, url, self._format_body(body))

    def log_response(self, method: str, url: str, status: int, text: str) -> None:
        body = None
        if self._log_body and text:
            try:
                body = self._format_body(json.loads(text))
            except (json.JSONDecodeError, ValueError):
                body = text[:500] + ("..." if len(text) > 500 else "")
        self._logger.info("RESPONSE: %s %s status=%d body=%s", method, url, status, body)


@dataclass
class HelkiResponse:
    status: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Decode the body; an empty body decodes to None."""
        if not self.text:
            return None
        try:
            return json.loads(self.text)
        except (json.JSONDecodeError, ValueError) as err:
            raise HelkiAPIError(
                f"Invalid JSON from HJM API: {self.text[:200]}", self.status
            ) from err


class HelkiSession:
    """
    Shared HTTP plumbing: API base, URL building, timeout and logging.

    Transport failures are translated here so that no aiohttp exception
    reaches the token manager or the REST client.
    """

    def __init__(self, session: aiohttp.ClientSession, config: HelkiConfig | None = None):
        self._session = session
        self.config = config or HelkiConfig()
        self._timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)

        log_file = os.getenv("HJM_HTTP_LOG_FILE")
        self._http_log = _HttpLogger(log_file) if log_file else None

    @property
    def api_base(self) -> str:
        return self.config.api_base

    # ---------- url builders ----------

    def url(self, path: str, **segments: Any) -> str:
        """Fill path placeholders with percent-encoded segments."""
        encoded = {k: quote(str(v), safe="") for k, v in segments.items()}
        return f"{self.api_base}{path.format(**encoded)}"

    # ---------- requests ----------

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict | None = None,
        json: Any = None,
        data: Any = None,
    ) -> HelkiResponse:
        if self._http_log:
            self._http_log.log_request(method, url, headers, json if json is not None else data)

        try:
            async with self._session.request(
                method,
                url,
                headers=headers,
                json=json,
                data=data,
                timeout=self._timeout,
            ) as resp:
                # Non-UTF-8 bodies are decoded lossily
                text = await resp.text(errors="replace")
                status = resp.status
        except asyncio.TimeoutError as err:
            raise HelkiNetworkError(
                "Timed out talking to HJM cloud. Check your internet."
            ) from err
        except aiohttp.ClientConnectionError as err:
            raise HelkiNetworkError(
                "Could not connect to HJM cloud. Check your internet."
            ) from err
        except aiohttp.ClientError as err:
            raise HelkiAPIError(f"HJM API error: {err}") from err

        if self._http_log:
            self._http_log.log_response(method, url, status, text)
        _LOGGER.debug("%s %s -> %d", method, url, status)
        return HelkiResponse(status, text)
