"""Internal models for compiled tool definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


SchemaNode = Any
SecurityRequirement = Dict[str, List[str]]

PARAMETER_LOCATIONS = ("path", "query", "header", "cookie")
REQUEST_BODY_PROPERTY = "requestBody"


@dataclass(frozen=True)
class ParameterBinding:
    name: str
    location: str


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: SchemaNode
    method: str
    path_template: str
    operation_id: str
    parameters: Tuple[ParameterBinding, ...] = ()
    request_body_content_type: Optional[str] = None
    security_requirements: Tuple[SecurityRequirement, ...] = field(default_factory=tuple)

    def to_mcp_format(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass(frozen=True)
class CachedToken:
    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return self.expires_at > now
