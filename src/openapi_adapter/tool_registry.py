"""Tool registry for the OpenAPI MCP adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import Settings
from .models import ToolDefinition
from .openapi import OpenAPILoader, OperationExtractor, determine_base_url
from .schemes import SecurityScheme, parse_security_schemes


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCatalog:
    tools: List[ToolDefinition]
    security_schemes: Dict[str, SecurityScheme]
    base_url: Optional[str]
    title: str = "openapi-mcp-adapter"
    version: str = "0.1.0"
    by_name: Dict[str, ToolDefinition] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_name", {tool.name: tool for tool in self.tools})

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self.by_name.get(name)


class ToolRegistry:
    def __init__(
        self,
        settings: Settings,
        openapi_loader: OpenAPILoader,
        extractor: Optional[OperationExtractor] = None,
    ) -> None:
        self.settings = settings
        self.openapi_loader = openapi_loader
        self.extractor = extractor or OperationExtractor()
        self._catalog: Optional[ToolCatalog] = None

    async def load_catalog(self) -> ToolCatalog:
        if self._catalog is not None:
            return self._catalog

        document = await self.openapi_loader.load(
            self.settings.openapi_source, dereference_refs=self.settings.openapi_dereference
        )
        self._catalog = self.build_catalog(document)
        return self._catalog

    def build_catalog(self, document: Dict[str, Any]) -> ToolCatalog:
        tools = self._filter(self.extractor.extract(document))
        base_url = determine_base_url(document, self.settings.openapi_base_url)
        if not base_url:
            logger.warning("OpenAPI document declares no server URL; requests will use bare paths")

        info = document.get("info") or {}
        catalog = ToolCatalog(
            tools=tools,
            security_schemes=parse_security_schemes(document),
            base_url=base_url,
            title=self.settings.service_name or info.get("title") or "openapi-mcp-adapter",
            version=self.settings.service_version or str(info.get("version") or "0.1.0"),
        )
        logger.info("Compiled %d tools from %s", len(tools), self.settings.openapi_source)
        return catalog

    async def load_tools(self) -> List[ToolDefinition]:
        catalog = await self.load_catalog()
        return catalog.tools

    def _filter(self, tools: List[ToolDefinition]) -> List[ToolDefinition]:
        allowlist = self.settings.operation_allowlist()
        denylist = self.settings.operation_denylist()

        if allowlist:
            tools = [tool for tool in tools if tool.operation_id in allowlist]
        if denylist:
            tools = [tool for tool in tools if tool.operation_id not in denylist]
        return tools
