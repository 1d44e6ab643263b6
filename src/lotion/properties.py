"""Notion page property -> plain value serialization."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from lotion.models import PropertyType

logger = logging.getLogger(__name__)


def _plain_text(items: list[dict[str, Any]] | None) -> str:
    return "".join(item.get("plain_text", "") for item in items or [])


def _option_name(value: dict[str, Any] | None) -> str | None:
    return value.get("name") if value else None


def _user_name(user: dict[str, Any] | None) -> str | None:
    if not user:
        return None
    return user.get("name") or user.get("id")


def _file_url(entry: dict[str, Any]) -> str | None:
    source = entry.get("type")
    if source in ("external", "file"):
        return (entry.get(source) or {}).get("url")
    return None


def _date(prop: dict[str, Any]) -> Any:
    date = prop.get("date")
    if not date:
        return None
    if date.get("end"):
        return {"start": date.get("start"), "end": date["end"]}
    return date.get("start")


def _formula(prop: dict[str, Any]) -> Any:
    formula = prop.get("formula") or {}
    kind = formula.get("type")
    if kind in ("string", "boolean"):
        return formula.get(kind)
    if kind in (PropertyType.NUMBER.value, PropertyType.DATE.value):
        return serialize_property(formula)
    return None


def _rollup(prop: dict[str, Any]) -> Any:
    rollup = prop.get("rollup") or {}
    kind = rollup.get("type")
    if kind == "array":
        return [serialize_property(item) for item in rollup.get("array") or []]
    if kind in (PropertyType.NUMBER.value, PropertyType.DATE.value):
        return serialize_property(rollup)
    return None


def _unique_id(prop: dict[str, Any]) -> Any:
    unique_id = prop.get("unique_id") or {}
    prefix = unique_id.get("prefix")
    number = unique_id.get("number")
    return f"{prefix}-{number}" if prefix else number


_SERIALIZERS: dict[PropertyType, Callable[[dict[str, Any]], Any]] = {
    PropertyType.TITLE: lambda p: _plain_text(p.get("title")),
    PropertyType.RICH_TEXT: lambda p: _plain_text(p.get("rich_text")),
    PropertyType.SELECT: lambda p: _option_name(p.get("select")),
    PropertyType.STATUS: lambda p: _option_name(p.get("status")),
    PropertyType.MULTI_SELECT: lambda p: [o.get("name") for o in p.get("multi_select") or []],
    PropertyType.DATE: _date,
    PropertyType.CHECKBOX: lambda p: bool(p.get("checkbox")),
    PropertyType.NUMBER: lambda p: p.get("number"),
    PropertyType.PEOPLE: lambda p: [_user_name(u) for u in p.get("people") or []],
    PropertyType.RELATION: lambda p: [r.get("id") for r in p.get("relation") or []],
    PropertyType.FILES: lambda p: [
        url for url in (_file_url(f) for f in p.get("files") or []) if url
    ],
    PropertyType.URL: lambda p: p.get("url"),
    PropertyType.EMAIL: lambda p: p.get("email"),
    PropertyType.PHONE_NUMBER: lambda p: p.get("phone_number"),
    PropertyType.FORMULA: _formula,
    PropertyType.ROLLUP: _rollup,
    PropertyType.CREATED_TIME: lambda p: p.get("created_time"),
    PropertyType.LAST_EDITED_TIME: lambda p: p.get("last_edited_time"),
    PropertyType.CREATED_BY: lambda p: _user_name(p.get("created_by")),
    PropertyType.LAST_EDITED_BY: lambda p: _user_name(p.get("last_edited_by")),
    PropertyType.UNIQUE_ID: _unique_id,
    PropertyType.VERIFICATION: lambda p: (p.get("verification") or {}).get("state"),
}


def serialize_property(prop: dict[str, Any]) -> Any:
    """Convert one property value to a plain scalar, list or dict.

    Unknown property types serialize to ``None``.
    """
    try:
        prop_type = PropertyType(prop.get("type"))
    except ValueError:
        logger.debug("Unsupported property type %r", prop.get("type"))
        return None
    return _SERIALIZERS[prop_type](prop)


def extract_title(properties: Mapping[str, dict[str, Any]]) -> str:
    """Return the page title from its ``title`` property, or ``""``."""
    for prop in properties.values():
        if prop.get("type") == PropertyType.TITLE.value:
            return _plain_text(prop.get("title")).strip()
    return ""
