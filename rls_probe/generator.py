"""Synthetic record generation for insert probes."""

from __future__ import annotations

import random
import string
from datetime import datetime, timezone
from typing import Any

from rls_probe.models import PropertyDescriptor, TableDescriptor
from rls_probe.schema_parser import is_primary_key

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits
_TOKEN_LENGTH = 6


def generate_record(table: TableDescriptor, rng: random.Random | None = None) -> dict[str, Any]:
    """Produce one record populating every required column except the primary key.

    Required names with no matching property are skipped.
    """
    rng = rng or random.Random()
    record: dict[str, Any] = {}
    for column in table.required:
        prop = table.properties.get(column)
        if prop is None:
            continue
        if column == table.primary_key_name or is_primary_key(prop):
            continue
        record[column] = generate_value(prop, rng)
    return record


def generate_value(prop: PropertyDescriptor, rng: random.Random | None = None) -> Any:
    rng = rng or random.Random()

    if prop.type == "string":
        if prop.enum:
            return rng.choice(prop.enum)
        if "timestamp" in prop.format:
            return datetime.now(timezone.utc).isoformat()
        return random_token(rng)
    if prop.type == "integer":
        return rng.randrange(100)
    if prop.type == "number":
        return rng.random() * 100
    if prop.type == "boolean":
        return rng.random() < 0.5
    if prop.type == "array":
        item = PropertyDescriptor(name=prop.name, type=prop.item_type or "")
        return [generate_value(item, rng)]
    return None


def random_token(rng: random.Random, length: int = _TOKEN_LENGTH) -> str:
    return "".join(rng.choice(_TOKEN_ALPHABET) for _ in range(length))
