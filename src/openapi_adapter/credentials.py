"""Credential slots sourced from environment variables.

Each slot is named ``<KIND>_<SCHEME>``, where ``<SCHEME>`` is the security
scheme name upper-cased with every non-alphanumeric character replaced by
an underscore, e.g. ``API_KEY_PETSTORE_AUTH`` for scheme ``petstore-auth``.
"""

from __future__ import annotations

import os
import re
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


class CredentialKind(str, Enum):
    API_KEY = "API_KEY"
    BEARER_TOKEN = "BEARER_TOKEN"
    BASIC_USERNAME = "BASIC_USERNAME"
    BASIC_PASSWORD = "BASIC_PASSWORD"
    OAUTH_CLIENT_ID = "OAUTH_CLIENT_ID"
    OAUTH_CLIENT_SECRET = "OAUTH_CLIENT_SECRET"
    OAUTH_SCOPES = "OAUTH_SCOPES"
    OAUTH_TOKEN = "OAUTH_TOKEN"
    OPENID_TOKEN = "OPENID_TOKEN"


def env_var_name(scheme_name: str, kind: CredentialKind) -> str:
    return f"{kind.value}_{_NON_ALNUM.sub('_', scheme_name).upper()}"


class CredentialStore:
    """Read-only snapshot of the credential slots."""

    def __init__(self, values: Mapping[str, str]) -> None:
        self._values = MappingProxyType(dict(values))

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "CredentialStore":
        return cls(os.environ if environ is None else environ)

    def get(self, scheme_name: str, kind: CredentialKind) -> Optional[str]:
        # Empty strings count as unset.
        return self._values.get(env_var_name(scheme_name, kind)) or None

    def has(self, scheme_name: str, kind: CredentialKind) -> bool:
        return self.get(scheme_name, kind) is not None
