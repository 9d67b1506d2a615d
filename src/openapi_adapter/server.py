"""MCP server setup for the OpenAPI MCP adapter."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from mcp.types import TextContent
from starlette.datastructures import Headers
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from .config import Settings
from .credentials import CredentialStore
from .executors import RestExecutor
from .models import ToolDefinition
from .oauth import OAuth2TokenManager, TokenCache
from .openapi import OpenAPILoader
from .service import AdapterService
from .tool_registry import ToolCatalog, ToolRegistry

logger = logging.getLogger(__name__)


class ProxiedTool(Tool):
    """An MCP tool whose input schema and execution come from a ToolDefinition."""

    def __init__(self, service: AdapterService, definition: ToolDefinition) -> None:
        super().__init__(
            name=definition.name,
            description=definition.description,
            parameters=definition.input_schema,
        )
        self._service = service

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        result = await self._service.execute_tool(self.name, arguments)
        text = "\n".join(item.get("text", "") for item in result.get("content", []))
        if result.get("is_error"):
            raise ToolError(text)
        return ToolResult(content=[TextContent(type="text", text=text)])


async def build_server(settings: Settings) -> tuple[FastMCP, object | None]:
    openapi_loader = OpenAPILoader(cache_seconds=settings.openapi_cache_seconds)
    registry = ToolRegistry(settings, openapi_loader)
    catalog = await registry.load_catalog()

    credentials = CredentialStore.from_environ()
    token_manager = OAuth2TokenManager(
        credentials,
        TokenCache(),
        timeout_seconds=settings.oauth_token_timeout_seconds,
    )
    executor = RestExecutor(
        max_retries=settings.adapter_max_retries,
        timeout_seconds=settings.adapter_request_timeout_seconds,
    )
    service = AdapterService(
        catalog,
        credentials,
        executor=executor,
        token_manager=token_manager,
        max_concurrency=settings.adapter_max_concurrency,
    )

    mcp = FastMCP(catalog.title, instructions=_instructions(catalog))
    register_tools(mcp, service, catalog.tools)
    _attach_healthcheck(mcp)
    app = _get_http_app(mcp, settings)
    return mcp, app


def register_tools(mcp: FastMCP, service: AdapterService, tools: List[ToolDefinition]) -> None:
    for tool in tools:
        mcp.add_tool(ProxiedTool(service, tool))
        logger.info("Registered tool: %s (%s %s)", tool.name, tool.method.upper(), tool.path_template)


class StaticTokenMiddleware:
    """Rejects HTTP requests that do not carry the configured bearer token."""

    def __init__(self, app: Any, token: Optional[str]) -> None:
        self.app = app
        self.token = token

    async def __call__(self, scope: Dict[str, Any], receive: Any, send: Any) -> None:
        if (
            not self.token
            or scope["type"] != "http"
            or scope.get("method") == "OPTIONS"
            or scope.get("path", "").endswith("/health")
        ):
            await self.app(scope, receive, send)
            return

        auth_header = Headers(scope=scope).get("authorization", "")
        token = auth_header.removeprefix("Bearer").strip()
        if token and hmac.compare_digest(token, self.token):
            await self.app(scope, receive, send)
            return

        logger.warning("Rejected unauthenticated request to %s", scope.get("path"))
        response = JSONResponse({"error": "Unauthorized"}, status_code=401)
        await response(scope, receive, send)


def _attach_healthcheck(mcp: FastMCP) -> None:
    @mcp.custom_route("/health", methods=["GET"])
    async def healthcheck(_request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok"})


def _instructions(catalog: ToolCatalog) -> str:
    return (
        f"Tools generated from the '{catalog.title}' API (version {catalog.version}). "
        "Each tool proxies one HTTP operation of the upstream API."
    )


def _http_middleware(settings: Settings) -> List[Middleware]:
    return [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        ),
        Middleware(StaticTokenMiddleware, token=settings.adapter_auth_token),
    ]


def _get_http_app(mcp: FastMCP, settings: Settings):  # type: ignore[no-untyped-def]
    transport = settings.adapter_transport.lower()
    middleware = _http_middleware(settings)
    if transport in {"http"}:
        return mcp.http_app(
            transport="http", stateless_http=True, json_response=True, middleware=middleware
        )
    if transport in {"streamable-http", "streamablehttp"}:
        return mcp.http_app(transport="streamable-http", stateless_http=False, middleware=middleware)
    if transport in {"sse"}:
        return mcp.http_app(transport="sse", middleware=middleware)
    return None
