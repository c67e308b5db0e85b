"""HTTP execution of prepared tool requests."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .auth import Authenticator
from .errors import ExecutionError, RemoteHttpError
from .logging import redact_headers
from .models import PreparedRequest


logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
MULTIPART_CONTENT_TYPE = "multipart/form-data"


@dataclass(frozen=True)
class ExecutionResult:
    status_code: int
    data: Any
    is_json: bool = True


class HttpExecutor:
    """Sends prepared requests through one shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        authenticator: Optional[Authenticator] = None,
        timeout_seconds: float = 30,
        close_client: Optional[bool] = None,
    ) -> None:
        self._owns_client = client is None if close_client is None else close_client
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self.authenticator = authenticator

    async def execute(self, prepared: PreparedRequest) -> ExecutionResult:
        request = self.build_request(prepared)
        if self.authenticator is not None:
            await self.authenticator.authenticate(request)

        logger.debug(
            "Sending %s %s headers=%s",
            request.method,
            request.url,
            redact_headers(dict(request.headers)),
        )
        try:
            response = await self.client.send(request)
        except httpx.HTTPError as exc:
            raise ExecutionError(str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            raise RemoteHttpError(response.status_code, response.text, response.reason_phrase)
        return self._parse_response(response)

    def build_request(self, prepared: PreparedRequest) -> httpx.Request:
        headers = dict(prepared.headers)
        content: Optional[bytes] = None
        data: Optional[Dict[str, str]] = None
        files: Optional[List[Tuple[str, Tuple[None, str]]]] = None

        body = prepared.body
        content_type = (prepared.content_type or "application/json").lower()
        if body is not None:
            if content_type == FORM_CONTENT_TYPE and isinstance(body, dict):
                data = {key: _form_value(value) for key, value in body.items() if value is not None}
                _set_default_header(headers, "Content-Type", FORM_CONTENT_TYPE)
            elif content_type == MULTIPART_CONTENT_TYPE and isinstance(body, dict):
                files = [
                    (key, (None, _form_value(value))) for key, value in body.items() if value is not None
                ]
            elif isinstance(body, (bytes, str)) and content_type != "application/json":
                content = body.encode("utf-8") if isinstance(body, str) else body
                _set_default_header(headers, "Content-Type", prepared.content_type)
            else:
                content = json.dumps(body, separators=(",", ":")).encode("utf-8")
                _set_default_header(headers, "Content-Type", "application/json")

        return self.client.build_request(
            prepared.method,
            prepared.url,
            params=prepared.params or None,
            headers=headers,
            content=content,
            data=data,
            files=files,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _parse_response(self, response: httpx.Response) -> ExecutionResult:
        if not response.content:
            return ExecutionResult(response.status_code, {"status": "ok"})
        try:
            return ExecutionResult(response.status_code, response.json())
        except ValueError:
            return ExecutionResult(response.status_code, response.text, is_json=False)


def _form_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _set_default_header(headers: Dict[str, str], name: str, value: str) -> None:
    if not any(key.lower() == name.lower() for key in headers):
        headers[name] = value
