"""
External identity resolution for graph entities.

Cartography labels every AWS resource type differently and there is no single
identity property shared by all of them.  ``resolve_identity`` picks one
stable, externally meaningful identifier per entity using a fixed candidate
order, so an entity resolves to the same id no matter which query found it.
"""

from __future__ import annotations

from typing import Any, Mapping

# Service-specific natural keys, in declared precedence.
NATURAL_KEY_FIELDS: tuple[str, ...] = (
    "db_instance_arn",
    "vpc_id",
    "subnet_id",
    "security_group_id",
    "internet_gateway_id",
    "nat_gateway_id",
    "route_table_id",
)

ID_FIELDS: tuple[str, ...] = ("id", "name", "arn") + NATURAL_KEY_FIELDS
LABEL_FIELDS: tuple[str, ...] = ("name", "id", "arn") + NATURAL_KEY_FIELDS


def _first_present(properties: Mapping[str, Any], fields: tuple[str, ...]) -> str | None:
    for key in fields:
        value = properties.get(key)
        if value is None:
            continue
        text = value if isinstance(value, str) else str(value)
        if text:
            return text
    return None


def resolve_identity(
    entity_label: str | None,
    properties: Mapping[str, Any] | None,
    internal_id: Any = None,
) -> tuple[str, str] | None:
    """Return ``(id, label)`` for an entity, or None if it is unresolvable.

    The candidate order is the same for every *entity_label*.  *internal_id* (the
    database's own row id) is used only when no candidate field is present.
    """
    props = properties if isinstance(properties, Mapping) else {}

    entity_id = _first_present(props, ID_FIELDS)
    label = _first_present(props, LABEL_FIELDS)

    if entity_id is None:
        if internal_id is None or internal_id == "":
            return None
        entity_id = str(internal_id)

    return entity_id, label or entity_id
