"""Core adapter service: validate, authenticate and dispatch tool calls."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from .credentials import CredentialStore
from .executors import ExecutionError, RestExecutor
from .logging import redact_payload
from .models import ToolDefinition
from .oauth import OAuth2TokenManager, TokenCache
from .security import CredentialInjector, SecurityResolver
from .tool_registry import ToolCatalog

logger = logging.getLogger(__name__)


class AdapterService:
    """
    Executes compiled tools against the upstream API.

    For every call:
    - arguments are validated against the tool's input schema
    - the first satisfiable security requirement is applied
    - the proxied request is sent and its response formatted as tool content

    Upstream HTTP errors (including 401/403 when credentials are missing)
    come back as error results rather than exceptions.
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        credentials: CredentialStore,
        executor: Optional[RestExecutor] = None,
        token_manager: Optional[OAuth2TokenManager] = None,
        max_concurrency: int = 20,
    ) -> None:
        self.catalog = catalog
        self.credentials = credentials
        self.executor = executor or RestExecutor()
        self.token_manager = token_manager or OAuth2TokenManager(credentials, TokenCache())
        self.injector = CredentialInjector(
            SecurityResolver(catalog.security_schemes, credentials), self.token_manager
        )
        self.semaphore = asyncio.Semaphore(max_concurrency)
        self._validators: Dict[str, Optional[Draft7Validator]] = {}

    async def execute_tool(self, tool_name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        tool = self.catalog.get(tool_name)
        if tool is None:
            logger.error("Unknown tool requested: %s", tool_name)
            return self._format_error(f"Error: Unknown tool requested: {tool_name}")

        arguments = arguments if isinstance(arguments, dict) else {}
        async with self.semaphore:
            logger.info("Executing tool=%s arguments=%s", tool.name, redact_payload(arguments))

            validation_error = self._validate(tool, arguments)
            if validation_error:
                return self._format_error(validation_error)

            auth = await self.injector.apply(tool)
            try:
                response = await self.executor.execute(tool, self.catalog.base_url, arguments, auth)
            except ExecutionError as exc:
                logger.error("Tool execution failed: %s", exc)
                return self._format_error(f"Error executing tool '{tool.name}': {exc}")

            if response.is_error:
                logger.warning("Upstream returned %s for tool=%s", response.status_code, tool.name)
                return self._format_error(
                    f"API Error (Status: {response.status_code}): {response.body_text()}"
                )
            return self._format_result(
                f"API Response (Status: {response.status_code}):\n{response.body_text()}"
            )

    def _validate(self, tool: ToolDefinition, arguments: Dict[str, Any]) -> Optional[str]:
        if tool.name not in self._validators:
            try:
                Draft7Validator.check_schema(tool.input_schema)
            except SchemaError as exc:
                logger.warning("Input schema of tool=%s is invalid, skipping validation: %s", tool.name, exc.message)
                self._validators[tool.name] = None
            else:
                self._validators[tool.name] = Draft7Validator(tool.input_schema)

        validator = self._validators[tool.name]
        if validator is None:
            return None
        try:
            errors = sorted(validator.iter_errors(arguments), key=lambda error: [str(part) for part in error.path])
        except re.error as exc:
            # ECMA-262 patterns such as \p{L} are not understood by the re module.
            logger.warning("Cannot validate arguments for tool=%s: %s", tool.name, exc)
            return None
        if not errors:
            return None
        details = ", ".join(
            f"{'.'.join(str(part) for part in error.path) or '<root>'} ({error.validator}): {error.message}"
            for error in errors
        )
        return f"Invalid arguments for tool '{tool.name}': {details}"

    def _format_result(self, text: str) -> Dict[str, Any]:
        return {"content": [{"type": "text", "text": text}]}

    def _format_error(self, message: str) -> Dict[str, Any]:
        return {"content": [{"type": "text", "text": message}], "is_error": True}
