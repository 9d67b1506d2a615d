"""Security requirement resolution and credential application.

A tool's security requirements are an ordered list of mappings: the list
is an OR of alternatives and each mapping is an AND of named schemes.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from functools import singledispatchmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .credentials import CredentialKind, CredentialStore
from .models import SecurityRequirement, ToolDefinition
from .oauth import OAuth2TokenManager
from .schemes import (
    ApiKeyScheme,
    HttpScheme,
    OAuth2Scheme,
    OpenIdConnectScheme,
    SecurityScheme,
)


logger = logging.getLogger(__name__)


class SecurityResolver:
    def __init__(self, schemes: Mapping[str, SecurityScheme], credentials: CredentialStore) -> None:
        self.schemes = schemes
        self.credentials = credentials

    def resolve(self, requirements: Iterable[SecurityRequirement]) -> Optional[SecurityRequirement]:
        """Returns the first requirement whose schemes are all available."""
        for requirement in requirements:
            if all(self.is_available(scheme_name) for scheme_name in requirement):
                return requirement
        return None

    def is_available(self, scheme_name: str) -> bool:
        scheme = self.schemes.get(scheme_name)
        if scheme is None:
            return False
        return self._available(scheme, scheme_name)

    @singledispatchmethod
    def _available(self, scheme: Any, scheme_name: str) -> bool:
        return False

    @_available.register
    def _(self, scheme: ApiKeyScheme, scheme_name: str) -> bool:
        return self.credentials.has(scheme_name, CredentialKind.API_KEY)

    @_available.register
    def _(self, scheme: HttpScheme, scheme_name: str) -> bool:
        if scheme.is_bearer:
            return self.credentials.has(scheme_name, CredentialKind.BEARER_TOKEN)
        if scheme.is_basic:
            return self.credentials.has(
                scheme_name, CredentialKind.BASIC_USERNAME
            ) and self.credentials.has(scheme_name, CredentialKind.BASIC_PASSWORD)
        return False

    @_available.register
    def _(self, scheme: OAuth2Scheme, scheme_name: str) -> bool:
        if self.credentials.has(scheme_name, CredentialKind.OAUTH_TOKEN):
            return True
        return (
            self.credentials.has(scheme_name, CredentialKind.OAUTH_CLIENT_ID)
            and self.credentials.has(scheme_name, CredentialKind.OAUTH_CLIENT_SECRET)
            and scheme.supports_token_flow
        )

    @_available.register
    def _(self, scheme: OpenIdConnectScheme, scheme_name: str) -> bool:
        return self.credentials.has(scheme_name, CredentialKind.OPENID_TOKEN)


@dataclass
class AppliedAuth:
    headers: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    cookies: List[str] = field(default_factory=list)
    schemes: List[str] = field(default_factory=list)
    authorization_scheme: Optional[str] = None

    def set_authorization(self, scheme_name: str, value: str) -> None:
        if "authorization" in self.headers:
            logger.warning(
                "Authorization header from '%s' replaces the one from '%s'",
                scheme_name,
                self.authorization_scheme or "an API key",
            )
        self.headers["authorization"] = value
        self.authorization_scheme = scheme_name


def describe_requirements(requirements: Iterable[SecurityRequirement]) -> str:
    """Renders requirements as ``[A AND B (scopes: x)] OR [C]``."""
    alternatives = []
    for requirement in requirements:
        parts = []
        for scheme_name, scopes in requirement.items():
            if scopes:
                parts.append(f"{scheme_name} (scopes: {', '.join(scopes)})")
            else:
                parts.append(scheme_name)
        alternatives.append(f"[{' AND '.join(parts)}]")
    return " OR ".join(alternatives)


class CredentialInjector:
    """Turns the resolved requirement of a tool into request credentials."""

    def __init__(self, resolver: SecurityResolver, token_manager: OAuth2TokenManager) -> None:
        self.resolver = resolver
        self.token_manager = token_manager

    @property
    def credentials(self) -> CredentialStore:
        return self.resolver.credentials

    async def apply(self, tool: ToolDefinition) -> AppliedAuth:
        auth = AppliedAuth()
        requirement = self.resolver.resolve(tool.security_requirements)

        if requirement is None:
            if any(tool.security_requirements):
                logger.warning(
                    "Tool '%s' requires security: %s, but no suitable credentials found.",
                    tool.name,
                    describe_requirements(tool.security_requirements),
                )
            return auth

        for scheme_name, scopes in requirement.items():
            scheme = self.resolver.schemes[scheme_name]
            await self._apply(scheme, scheme_name, list(scopes or []), auth)
        return auth

    @singledispatchmethod
    async def _apply(self, scheme: Any, scheme_name: str, scopes: List[str], auth: AppliedAuth) -> None:
        logger.warning("No credential handler for scheme '%s'", scheme_name)

    @_apply.register
    async def _(self, scheme: ApiKeyScheme, scheme_name: str, scopes: List[str], auth: AppliedAuth) -> None:
        api_key = self.credentials.get(scheme_name, CredentialKind.API_KEY)
        if not api_key:
            return
        if scheme.location == "header":
            auth.headers[scheme.name.lower()] = api_key
        elif scheme.location == "query":
            auth.query[scheme.name] = api_key
        elif scheme.location == "cookie":
            auth.cookies.insert(0, f"{scheme.name}={api_key}")
        auth.schemes.append(scheme_name)
        logger.debug("Applied API key '%s' in %s '%s'", scheme_name, scheme.location, scheme.name)

    @_apply.register
    async def _(self, scheme: HttpScheme, scheme_name: str, scopes: List[str], auth: AppliedAuth) -> None:
        if scheme.is_bearer:
            token = self.credentials.get(scheme_name, CredentialKind.BEARER_TOKEN)
            if token:
                auth.set_authorization(scheme_name, f"Bearer {token}")
                auth.schemes.append(scheme_name)
        elif scheme.is_basic:
            username = self.credentials.get(scheme_name, CredentialKind.BASIC_USERNAME)
            password = self.credentials.get(scheme_name, CredentialKind.BASIC_PASSWORD)
            if username and password:
                encoded = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
                auth.set_authorization(scheme_name, f"Basic {encoded}")
                auth.schemes.append(scheme_name)

    @_apply.register
    async def _(self, scheme: OAuth2Scheme, scheme_name: str, scopes: List[str], auth: AppliedAuth) -> None:
        token = await self.token_manager.acquire_token(scheme_name, scheme, scopes)
        if not token:
            logger.warning("Proceeding without an OAuth2 token for '%s'", scheme_name)
            return
        auth.set_authorization(scheme_name, f"Bearer {token}")
        auth.schemes.append(scheme_name)
        if scopes:
            logger.debug("Requested scopes for '%s': %s", scheme_name, ", ".join(scopes))

    @_apply.register
    async def _(
        self, scheme: OpenIdConnectScheme, scheme_name: str, scopes: List[str], auth: AppliedAuth
    ) -> None:
        token = self.credentials.get(scheme_name, CredentialKind.OPENID_TOKEN)
        if token:
            auth.set_authorization(scheme_name, f"Bearer {token}")
            auth.schemes.append(scheme_name)
