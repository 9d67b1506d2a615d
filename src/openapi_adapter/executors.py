"""Execution layer for proxied REST calls."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

import httpx

from .logging import redact_payload
from .models import REQUEST_BODY_PROPERTY, ToolDefinition
from .security import AppliedAuth

logger = logging.getLogger(__name__)


class ExecutionError(Exception):
    pass


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    content_type: str
    body: Any

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def body_text(self) -> str:
        if self.body is None or self.body == "":
            return f"(Status: {self.status_code} - No body content)"
        if isinstance(self.body, (dict, list)):
            return json.dumps(self.body, indent=2)
        return str(self.body)


@dataclass
class PreparedRequest:
    method: str
    url: str
    headers: Dict[str, str]
    params: Dict[str, Any]
    json_body: Any = None
    content: Optional[str] = None


class RestExecutor:
    def __init__(
        self,
        max_retries: int = 2,
        timeout_seconds: float = 30,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.max_retries = max_retries
        self.timeout_seconds = timeout_seconds
        self.http_client = http_client

    async def execute(
        self,
        tool: ToolDefinition,
        base_url: Optional[str],
        arguments: Dict[str, Any],
        auth: Optional[AppliedAuth] = None,
    ) -> ApiResponse:
        request = self.prepare(tool, base_url, arguments, auth or AppliedAuth())
        logger.info("Executing tool=%s %s %s", tool.name, request.method, request.url)

        attempt = 0
        while True:
            attempt += 1
            try:
                async with self._client() as client:
                    response = await client.request(
                        request.method,
                        request.url,
                        headers=request.headers,
                        params=request.params,
                        json=request.json_body,
                        content=request.content,
                    )
                return _to_api_response(response)
            except httpx.TransportError as exc:
                if attempt > self.max_retries:
                    raise ExecutionError(f"Request to {request.url} failed: {exc}") from exc
                backoff = min(2 ** attempt, 6)
                logger.warning(
                    "REST call failed (attempt %s/%s). Retrying in %ss. tool=%s headers=%s",
                    attempt,
                    self.max_retries,
                    backoff,
                    tool.name,
                    redact_payload(request.headers),
                )
                await asyncio.sleep(backoff)

    def prepare(
        self,
        tool: ToolDefinition,
        base_url: Optional[str],
        arguments: Dict[str, Any],
        auth: AppliedAuth,
    ) -> PreparedRequest:
        path = tool.path_template
        params: Dict[str, Any] = {}
        headers: Dict[str, str] = {"accept": "application/json"}
        cookies: List[str] = []

        for binding in tool.parameters:
            value = arguments.get(binding.name)
            if value is None:
                continue
            if binding.location == "path":
                path = path.replace(f"{{{binding.name}}}", quote(_stringify(value), safe=""))
            elif binding.location == "query":
                params[binding.name] = value
            elif binding.location == "header":
                headers[binding.name.lower()] = _stringify(value)
            elif binding.location == "cookie":
                cookies.append(f"{binding.name}={_stringify(value)}")

        if "{" in path:
            raise ExecutionError(f"Failed to resolve path parameters: {path}")

        headers.update(auth.headers)
        params.update(auth.query)
        cookies = [*auth.cookies, *cookies]
        if cookies:
            headers["cookie"] = "; ".join(cookies)

        request = PreparedRequest(
            method=tool.method.upper(),
            url=f"{base_url.rstrip('/')}{path}" if base_url else path,
            headers=headers,
            params=params,
        )

        body = arguments.get(REQUEST_BODY_PROPERTY)
        if tool.request_body_content_type and body is not None:
            headers["content-type"] = tool.request_body_content_type
            if tool.request_body_content_type == "application/json":
                request.json_body = body
            else:
                request.content = body if isinstance(body, str) else json.dumps(body)

        return request

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http_client is not None:
            yield self.http_client
            return
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            yield client


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _to_api_response(response: httpx.Response) -> ApiResponse:
    content_type = response.headers.get("content-type", "").lower()
    body: Any = response.text
    if "application/json" in content_type and response.content:
        try:
            body = response.json()
        except ValueError:
            body = response.text
    return ApiResponse(status_code=response.status_code, content_type=content_type, body=body)
