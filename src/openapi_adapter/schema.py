"""OpenAPI Schema Object to JSON Schema translation."""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .models import SchemaNode


logger = logging.getLogger(__name__)


# OpenAPI-only annotations with no JSON Schema meaning for the validator.
STRIPPED_KEYWORDS = frozenset(
    {
        "nullable",
        "example",
        "xml",
        "externalDocs",
        "deprecated",
        "readOnly",
        "writeOnly",
        "discriminator",
    }
)

_SCHEMA_MAP_KEYWORDS = ("properties", "patternProperties")
_SCHEMA_KEYWORDS = ("items", "not", "additionalProperties")
_SCHEMA_LIST_KEYWORDS = ("allOf", "oneOf", "anyOf", "prefixItems")

# (child source node, container to write into, key or index in that container)
_Child = Tuple[Any, Any, Any]


def unconstrained_object() -> Dict[str, Any]:
    return {"type": "object"}


class SchemaTranslator:
    """Converts OpenAPI schema nodes into validator-ready JSON Schema.

    Translation walks an explicit work stack instead of recursing, so deep
    but finite nesting never hits the interpreter recursion limit. Each
    frame carries the identities of the source nodes on its own path from
    the root; a child whose identity is already on that path closes a
    cycle and is replaced by an unconstrained object.
    """

    def translate(self, node: Any, visited: Optional[FrozenSet[int]] = None) -> SchemaNode:
        root: Dict[str, Any] = {}
        stack: List[Tuple[Any, FrozenSet[int], Any, Any]] = [
            (node, visited or frozenset(), root, "schema")
        ]

        while stack:
            source, path_ids, container, key = stack.pop()
            if isinstance(source, Mapping) and id(source) in path_ids:
                logger.debug("Breaking schema cycle at %r", key)
                container[key] = unconstrained_object()
                continue

            translated, children = self._translate_node(source)
            container[key] = translated
            if children:
                child_ids = path_ids | {id(source)}
                for child, child_container, child_key in children:
                    stack.append((child, child_ids, child_container, child_key))

        return root["schema"]

    def _translate_node(self, source: Any) -> Tuple[SchemaNode, List[_Child]]:
        if isinstance(source, bool):
            return source, []
        if not isinstance(source, Mapping):
            logger.warning(
                "Malformed schema node of type %s; using an unconstrained object",
                type(source).__name__,
            )
            return unconstrained_object(), []
        if "$ref" in source:
            logger.warning("Unresolved $ref '%s'; using an unconstrained object", source["$ref"])
            return unconstrained_object(), []

        schema = {key: value for key, value in source.items() if key not in STRIPPED_KEYWORDS}
        schema_type = _normalize_type(source.get("type"))
        if schema_type is not None:
            schema["type"] = schema_type
        if source.get("nullable") is True:
            schema["type"] = _fold_null(schema.get("type"))

        children: List[_Child] = []

        for keyword in _SCHEMA_MAP_KEYWORDS:
            members = source.get(keyword)
            if not isinstance(members, Mapping):
                continue
            # Pre-seeded so property order survives the out-of-order fill.
            translated_members: Dict[str, Any] = dict.fromkeys(members)
            schema[keyword] = translated_members
            for name, member in members.items():
                children.append((member, translated_members, name))

        for keyword in _SCHEMA_KEYWORDS:
            member = source.get(keyword)
            if isinstance(member, (Mapping, bool)):
                children.append((member, schema, keyword))

        for keyword in _SCHEMA_LIST_KEYWORDS:
            members = source.get(keyword)
            if not isinstance(members, list):
                continue
            translated_list: List[Any] = [None] * len(members)
            schema[keyword] = translated_list
            for index, member in enumerate(members):
                children.append((member, translated_list, index))

        return schema, children


def _normalize_type(schema_type: Any) -> Any:
    if schema_type == "integer":
        return "number"
    if isinstance(schema_type, list):
        normalized: List[Any] = []
        for item in schema_type:
            item = "number" if item == "integer" else item
            if item not in normalized:
                normalized.append(item)
        return normalized
    return schema_type


def _fold_null(schema_type: Any) -> Any:
    if isinstance(schema_type, list):
        return schema_type if "null" in schema_type else [*schema_type, "null"]
    if isinstance(schema_type, str):
        return schema_type if schema_type == "null" else [schema_type, "null"]
    return "null"


def translate_schema(node: Any) -> SchemaNode:
    return SchemaTranslator().translate(node)
