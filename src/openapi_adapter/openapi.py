"""OpenAPI document loader and operation extractor."""

from __future__ import annotations

import copy
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
import yaml

from .models import (
    PARAMETER_LOCATIONS,
    REQUEST_BODY_PROPERTY,
    ParameterBinding,
    SecurityRequirement,
    ToolDefinition,
)
from .naming import NameAllocator, generate_operation_id
from .schema import SchemaTranslator


logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
JSON_CONTENT_TYPE = "application/json"


class DocumentError(Exception):
    pass


class OpenAPILoader:
    def __init__(self, cache_seconds: int = 3600, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.cache_seconds = cache_seconds
        self.http_client = http_client
        self._cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    async def load(self, source: str, dereference_refs: bool = True) -> Dict[str, Any]:
        if source.startswith(("http://", "https://")):
            document = await self.load_url(source)
        else:
            document = self.load_file(Path(source))
        return dereference(document) if dereference_refs else document

    async def load_url(self, url: str) -> Dict[str, Any]:
        cached = self._cache.get(url)
        if cached and time.time() - cached[0] < self.cache_seconds:
            return cached[1]

        try:
            if self.http_client is not None:
                response = await self.http_client.get(url)
            else:
                async with httpx.AsyncClient(timeout=30) as client:
                    response = await client.get(url)
        except httpx.HTTPError as exc:
            raise DocumentError(f"Failed to fetch OpenAPI document {url}: {exc}") from exc

        if response.status_code != 200:
            raise DocumentError(f"Failed to fetch OpenAPI document {url} ({response.status_code})")

        document = parse_document(response.text, source=url)
        self._cache[url] = (time.time(), document)
        return document

    def load_file(self, path: Path) -> Dict[str, Any]:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DocumentError(f"Cannot read OpenAPI document {path}: {exc}") from exc
        return parse_document(text, source=str(path))


def parse_document(text: str, source: str = "<string>") -> Dict[str, Any]:
    """Parses JSON or YAML text into an OpenAPI document mapping."""
    try:
        document = json.loads(text)
    except ValueError:
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise DocumentError(f"{source} is neither valid JSON nor YAML: {exc}") from exc

    if not isinstance(document, dict):
        raise DocumentError(f"{source} does not contain an OpenAPI object")
    if not isinstance(document.get("paths"), dict):
        raise DocumentError(f"{source} has no 'paths' object")
    return document


def dereference(document: Dict[str, Any]) -> Dict[str, Any]:
    """Resolves internal ``#/...`` references in a copy of ``document``.

    Every reference is replaced by its shared target object, so a recursive
    schema becomes a real object cycle. External and dangling references are
    left untouched.
    """
    root = copy.deepcopy(document)
    seen: set[int] = set()
    stack: List[Any] = [root]

    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))

        if isinstance(node, dict):
            items = list(node.items())
        elif isinstance(node, list):
            items = list(enumerate(node))
        else:
            continue

        for key, value in items:
            if _is_ref(value):
                target = _resolve_ref(root, value["$ref"])
                if target is None:
                    continue
                node[key] = target
                value = target
            if isinstance(value, (dict, list)):
                stack.append(value)

    return root


def _is_ref(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("$ref"), str)


def _resolve_ref(root: Dict[str, Any], ref: str) -> Optional[Any]:
    chain: set[str] = set()
    target: Any = {"$ref": ref}
    while _is_ref(target):
        pointer = target["$ref"]
        if not pointer.startswith("#") or pointer in chain:
            return None
        chain.add(pointer)
        target = _follow_pointer(root, pointer)
        if target is None:
            logger.warning("Dangling $ref '%s'", pointer)
            return None
    return target


def _follow_pointer(root: Any, pointer: str) -> Optional[Any]:
    node = root
    for token in pointer.lstrip("#").split("/")[1:]:
        token = token.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict) and token in node:
            node = node[token]
        elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
            node = node[int(token)]
        else:
            return None
    return node


def determine_base_url(document: Mapping[str, Any], override: Optional[str] = None) -> Optional[str]:
    if override:
        return override.rstrip("/")

    servers = [server for server in document.get("servers") or [] if isinstance(server, dict)]
    if not servers or not servers[0].get("url"):
        return None
    if len(servers) > 1:
        logger.warning(
            "Multiple servers found. Using first: '%s'. Set OPENAPI_BASE_URL to override.",
            servers[0]["url"],
        )
    return str(servers[0]["url"]).rstrip("/")


class OperationExtractor:
    """Compiles every operation of a document into a ToolDefinition."""

    def __init__(self, translator: Optional[SchemaTranslator] = None) -> None:
        self.translator = translator or SchemaTranslator()

    def extract(self, document: Mapping[str, Any]) -> List[ToolDefinition]:
        tools: List[ToolDefinition] = []
        allocator = NameAllocator()
        global_security = _security_list(document.get("security"))

        for path, path_item in (document.get("paths") or {}).items():
            if not isinstance(path_item, Mapping):
                continue
            shared_parameters = path_item.get("parameters") or []

            for method in HTTP_METHODS:
                operation = path_item.get(method)
                if not isinstance(operation, Mapping):
                    continue
                tools.append(
                    self._build_tool(
                        path, method, operation, shared_parameters, allocator, global_security
                    )
                )

        return tools

    def _build_tool(
        self,
        path: str,
        method: str,
        operation: Mapping[str, Any],
        shared_parameters: List[Any],
        allocator: NameAllocator,
        global_security: List[SecurityRequirement],
    ) -> ToolDefinition:
        operation_id = operation.get("operationId") or generate_operation_id(method, path)
        name = allocator.allocate(operation.get("operationId"), method, path)
        description = (
            operation.get("description")
            or operation.get("summary")
            or f"Executes {method.upper()} {path}"
        )

        parameters = _merge_parameters(shared_parameters, operation.get("parameters") or [])
        input_schema, bindings, content_type = self._build_input_schema(parameters, operation)

        if "security" in operation and operation["security"] is not None:
            security = _security_list(operation["security"])
        else:
            security = global_security

        return ToolDefinition(
            name=name,
            description=description,
            input_schema=input_schema,
            method=method,
            path_template=path,
            operation_id=operation_id,
            parameters=tuple(bindings),
            request_body_content_type=content_type,
            security_requirements=tuple(security),
        )

    def _build_input_schema(
        self, parameters: List[Mapping[str, Any]], operation: Mapping[str, Any]
    ) -> Tuple[Dict[str, Any], List[ParameterBinding], Optional[str]]:
        properties: Dict[str, Any] = {}
        required: List[str] = []
        bindings: List[ParameterBinding] = []

        has_body = _body_content(operation.get("requestBody")) is not None

        for parameter in parameters:
            name = parameter.get("name")
            location = parameter.get("in", "query")
            if not name:
                logger.warning("Skipping parameter without a name: %s", parameter)
                continue
            if location not in PARAMETER_LOCATIONS:
                logger.warning("Skipping parameter '%s' with unknown location '%s'", name, location)
                continue
            if name in properties:
                logger.warning(
                    "Skipping parameter '%s' in %s: the name is already bound to another location",
                    name,
                    location,
                )
                continue
            if has_body and name == REQUEST_BODY_PROPERTY:
                logger.warning(
                    "Skipping parameter '%s' in %s: the name is reserved for the request body",
                    name,
                    location,
                )
                continue

            schema = self.translator.translate(_parameter_schema(parameter))
            if isinstance(schema, dict) and parameter.get("description"):
                schema["description"] = parameter["description"]

            properties[name] = schema
            bindings.append(ParameterBinding(name=name, location=location))
            if parameter.get("required"):
                required.append(name)

        content_type = self._add_request_body(operation.get("requestBody"), properties, required)

        input_schema: Dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            input_schema["required"] = list(dict.fromkeys(required))
        return input_schema, bindings, content_type

    def _add_request_body(
        self, request_body: Any, properties: Dict[str, Any], required: List[str]
    ) -> Optional[str]:
        content = _body_content(request_body)
        if content is None:
            return None

        if JSON_CONTENT_TYPE in content:
            media = content[JSON_CONTENT_TYPE] or {}
            body_schema = self.translator.translate(media.get("schema", {}))
            if isinstance(body_schema, dict):
                body_schema["description"] = (
                    request_body.get("description")
                    or body_schema.get("description")
                    or "The JSON request body."
                )
            content_type = JSON_CONTENT_TYPE
        else:
            content_type = next(iter(content))
            body_schema = {
                "type": "string",
                "description": request_body.get("description")
                or f"Request body (content type: {content_type})",
            }

        properties[REQUEST_BODY_PROPERTY] = body_schema
        if request_body.get("required"):
            required.append(REQUEST_BODY_PROPERTY)
        return content_type


def _body_content(request_body: Any) -> Optional[Mapping[str, Any]]:
    if not isinstance(request_body, Mapping):
        return None
    content = request_body.get("content")
    if not isinstance(content, Mapping) or not content:
        return None
    return content


def _merge_parameters(shared: List[Any], own: List[Any]) -> List[Mapping[str, Any]]:
    merged: Dict[Tuple[Any, Any], Mapping[str, Any]] = {}
    for parameter in [*shared, *own]:
        if not isinstance(parameter, Mapping):
            logger.warning("Skipping malformed parameter: %r", parameter)
            continue
        merged[(parameter.get("name"), parameter.get("in"))] = parameter
    return list(merged.values())


def _parameter_schema(parameter: Mapping[str, Any]) -> Any:
    if "schema" in parameter:
        return parameter["schema"]
    for media in (parameter.get("content") or {}).values():
        if isinstance(media, Mapping) and "schema" in media:
            return media["schema"]
    return {"type": "string"}


def _security_list(value: Any) -> List[SecurityRequirement]:
    if not isinstance(value, list):
        return []
    return [
        {name: list(scopes or []) for name, scopes in requirement.items()}
        for requirement in value
        if isinstance(requirement, Mapping)
    ]
