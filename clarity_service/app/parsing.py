"""
Best-effort JSON extraction from free-text model replies.

Models are asked to answer "strictly as JSON" but routinely wrap the object in
prose or markdown fences. We take the widest {...} span, decode it, and merge
whatever fields survive over a typed default. Nothing here raises.
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

log = structlog.get_logger()

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

M = TypeVar("M", bound=BaseModel)


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the first-to-last brace span of *text* decoded as a dict, or None."""
    if not text:
        return None
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        log.warning("json_decode_failed", snippet=match.group(0)[:200])
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_with_fallback(
    text: Optional[str],
    model_cls: Type[M],
    default: M,
    fallback: Optional[M] = None,
) -> M:
    """
    Decode *text* into *model_cls*, field by field over *default*.

    Keys may use either the alias (camelCase) or the field name. Null values
    keep the default. When no object decodes or validation fails, *fallback*
    (or *default* when not given) is returned whole.
    """
    if fallback is None:
        fallback = default

    parsed = extract_json_object(text)
    if parsed is None:
        return fallback

    aliases = {name: field.alias or name for name, field in model_cls.model_fields.items()}
    merged = default.model_dump(by_alias=True)
    for key, value in parsed.items():
        if value is None:
            continue
        merged[aliases.get(key, key)] = value

    try:
        return model_cls.model_validate(merged)
    except ValidationError as exc:
        log.warning("reply_validation_failed", model=model_cls.__name__, errors=exc.error_count())
        return fallback
