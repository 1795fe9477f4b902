from __future__ import annotations

import base64
import json
from typing import Any, Dict, Optional
from urllib import error, request

from adapters.base import (
    AdapterConnectionError,
    AdapterError,
    AdapterPermissionError,
    AdapterSyntaxError,
    AdapterTimeoutError,
    DatabaseAdapter,
    UnknownAdapterError,
)
from query.result import TIMEOUT_MESSAGE


class HTTPSQLAdapter(DatabaseAdapter):
    """Base for engines reached through a JSON-over-HTTP SQL endpoint."""

    engine = "http"

    def __init__(self, source_config: Optional[Dict[str, Any]] = None):
        super().__init__(source_config)
        url = self.source_config.get("url")
        if not url:
            raise ValueError(f"url is required for {self.engine} adapter")
        self.base_url = str(url).rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        user = self.source_config.get("user")
        password = self.source_config.get("password")
        if user:
            token = base64.b64encode(f"{user}:{password or ''}".encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {token}"
        api_key = self.source_config.get("api_key")
        if api_key:
            headers["Authorization"] = f"ApiKey {api_key}"
        return headers

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]], timeout: float) -> Any:
        data = json.dumps(payload, default=str).encode("utf-8") if payload is not None else None
        req = request.Request(url=f"{self.base_url}{path}", data=data, headers=self._headers(), method=method)
        try:
            with request.urlopen(req, timeout=timeout) as resp:
                raw = resp.read().decode("utf-8")
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            raise self._http_error(exc.code, self._error_text(body)) from exc
        except error.URLError as exc:
            if isinstance(exc.reason, TimeoutError):
                raise AdapterTimeoutError(TIMEOUT_MESSAGE) from exc
            raise AdapterConnectionError(f"Could not connect to {self.base_url}: {exc.reason}") from exc
        except TimeoutError as exc:
            raise AdapterTimeoutError(TIMEOUT_MESSAGE) from exc
        return json.loads(raw) if raw.strip() else None

    def _error_text(self, body: str) -> str:
        return body.strip()

    def _http_error(self, status: int, message: str) -> AdapterError:
        if any(marker in message.lower() for marker in self.timeout_errors):
            return AdapterTimeoutError(TIMEOUT_MESSAGE)
        if status in (401, 403):
            return AdapterPermissionError(message)
        if status in (408, 504):
            return AdapterTimeoutError(TIMEOUT_MESSAGE)
        if status in (502, 503):
            return AdapterConnectionError(message)
        if status == 400:
            return AdapterSyntaxError(message)
        return UnknownAdapterError(message)
