"""Deterministic, collision-free tool names."""

from __future__ import annotations

import re
from typing import Optional, Set


_SEPARATOR_RUN = re.compile(r"[-_/](.)")
_DISALLOWED_CHARS = re.compile(r"[^a-z0-9_-]", re.IGNORECASE)


def title_case(segment: str) -> str:
    """Converts ``snake_case``, ``kebab-case`` or ``{param}`` segments to TitleCase."""
    text = _SEPARATOR_RUN.sub(lambda match: match.group(1).upper(), segment.lower())
    text = text.removeprefix("{").removesuffix("}")
    return text[:1].upper() + text[1:]


def generate_operation_id(method: str, path: str) -> str:
    """Synthesizes an identifier, e.g. ``get /users/{userId}`` -> ``GetUsersByUserid``.

    Only a parameter in the *last* path segment is encoded (as ``By<Param>``);
    intermediate parameters are dropped.
    """
    method_name = method.lower()
    parts = [part for part in path.split("/") if part]

    name = method_name
    for index, part in enumerate(parts):
        if part.startswith("{") and part.endswith("}"):
            if index == len(parts) - 1:
                name += "By" + title_case(part)
        else:
            name += title_case(part)

    if name == method_name:
        name += "Root"

    return name[:1].upper() + name[1:]


def sanitize_tool_name(name: str) -> str:
    return _DISALLOWED_CHARS.sub("_", name.replace(".", "_")).lower()


class NameAllocator:
    """Hands out unique tool names for one document pass.

    Not reentrant: uniqueness relies on allocations happening in document
    order on a single allocator.
    """

    def __init__(self, used_names: Optional[Set[str]] = None) -> None:
        self.used_names: Set[str] = used_names if used_names is not None else set()

    def allocate(self, operation_id: Optional[str], method: str, path: str) -> str:
        base_name = sanitize_tool_name(operation_id or generate_operation_id(method, path))

        candidate = base_name
        counter = 2
        while candidate in self.used_names:
            candidate = f"{base_name}_{counter}"
            counter += 1

        self.used_names.add(candidate)
        return candidate
