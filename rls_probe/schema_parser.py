"""Normalize a PostgREST OpenAPI document into the in-memory table model."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rls_probe.errors import SchemaParseError
from rls_probe.models import PropertyDescriptor, TableDescriptor

# PostgREST tags primary-key columns in their description text.
PK_MARKER = "<pk/>"


def parse_schema(payload: Any) -> list[TableDescriptor]:
    """Build a TableDescriptor for every entity under ``definitions``.

    Args:
        payload: Decoded JSON body of ``GET /rest/v1/``.

    Returns:
        Tables in the same order as the payload's definitions mapping.

    Raises:
        SchemaParseError: If the payload has no ``definitions`` mapping.
    """
    if not isinstance(payload, Mapping):
        raise SchemaParseError("Schema payload is not a JSON object")
    definitions = payload.get("definitions")
    if not isinstance(definitions, Mapping):
        raise SchemaParseError("Schema payload has no 'definitions' object")

    return [parse_definition(name, raw or {}) for name, raw in definitions.items()]


def parse_definition(name: str, raw: Mapping[str, Any]) -> TableDescriptor:
    raw_properties = raw.get("properties") or {}
    properties: dict[str, PropertyDescriptor] = {}
    primary_key = None

    for column, raw_prop in raw_properties.items():
        prop = parse_property(column, raw_prop or {})
        properties[column] = prop
        if primary_key is None and PK_MARKER in prop.description:
            primary_key = column

    return TableDescriptor(
        name=name,
        properties=properties,
        required=tuple(raw.get("required") or ()),
        primary_key_name=primary_key,
    )


def parse_property(name: str, raw: Mapping[str, Any]) -> PropertyDescriptor:
    enum_values = raw.get("enum")
    items = raw.get("items") or {}
    return PropertyDescriptor(
        name=name,
        type=raw.get("type") or "",
        format=raw.get("format") or "",
        description=raw.get("description") or "",
        enum=tuple(enum_values) if enum_values else None,
        default=raw.get("default"),
        max_length=raw.get("maxLength"),
        item_type=items.get("type") if isinstance(items, Mapping) else None,
    )


def is_primary_key(prop: PropertyDescriptor) -> bool:
    return PK_MARKER in prop.description
