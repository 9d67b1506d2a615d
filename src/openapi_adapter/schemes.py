"""Security scheme variants parsed from ``components.securitySchemes``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union


logger = logging.getLogger(__name__)


# Flows that can be run without user interaction.
TOKEN_FLOWS = ("clientCredentials", "password")


@dataclass(frozen=True)
class ApiKeyScheme:
    name: str
    location: str


@dataclass(frozen=True)
class HttpScheme:
    scheme: str

    @property
    def is_bearer(self) -> bool:
        return self.scheme.lower() == "bearer"

    @property
    def is_basic(self) -> bool:
        return self.scheme.lower() == "basic"


@dataclass(frozen=True)
class OAuthFlow:
    token_url: Optional[str] = None
    authorization_url: Optional[str] = None
    scopes: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class OAuth2Scheme:
    flows: Dict[str, OAuthFlow] = field(default_factory=dict)

    @property
    def supports_token_flow(self) -> bool:
        return any(flow in self.flows for flow in TOKEN_FLOWS)

    def token_url(self) -> Optional[str]:
        for flow_name in TOKEN_FLOWS:
            flow = self.flows.get(flow_name)
            if flow and flow.token_url:
                return flow.token_url
        return None


@dataclass(frozen=True)
class OpenIdConnectScheme:
    openid_connect_url: Optional[str] = None


SecurityScheme = Union[ApiKeyScheme, HttpScheme, OAuth2Scheme, OpenIdConnectScheme]


def parse_security_scheme(scheme_name: str, raw: Any) -> Optional[SecurityScheme]:
    if not isinstance(raw, Mapping):
        logger.warning("Security scheme '%s' is not an object; ignoring it", scheme_name)
        return None

    scheme_type = raw.get("type")
    if scheme_type == "apiKey":
        if not raw.get("name") or raw.get("in") not in {"header", "query", "cookie"}:
            logger.warning("API key scheme '%s' needs 'name' and a valid 'in'", scheme_name)
            return None
        return ApiKeyScheme(name=raw["name"], location=raw["in"])
    if scheme_type == "http":
        return HttpScheme(scheme=str(raw.get("scheme") or ""))
    if scheme_type == "oauth2":
        flows = {
            flow_name: OAuthFlow(
                token_url=flow.get("tokenUrl"),
                authorization_url=flow.get("authorizationUrl"),
                scopes=dict(flow.get("scopes") or {}),
            )
            for flow_name, flow in (raw.get("flows") or {}).items()
            if isinstance(flow, Mapping)
        }
        return OAuth2Scheme(flows=flows)
    if scheme_type == "openIdConnect":
        return OpenIdConnectScheme(openid_connect_url=raw.get("openIdConnectUrl"))

    logger.warning("Unsupported security scheme type '%s' for '%s'", scheme_type, scheme_name)
    return None


def parse_security_schemes(document: Mapping[str, Any]) -> Dict[str, SecurityScheme]:
    components = document.get("components") or {}
    raw_schemes = components.get("securitySchemes") or {}

    schemes: Dict[str, SecurityScheme] = {}
    for scheme_name, raw in raw_schemes.items():
        scheme = parse_security_scheme(scheme_name, raw)
        if scheme is not None:
            schemes[scheme_name] = scheme
    return schemes
