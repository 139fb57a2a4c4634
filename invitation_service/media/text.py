from __future__ import annotations

import re
from typing import Literal, Mapping, Set, Union

from pydantic import BaseModel

PLACEHOLDER_FIELDS = ("bride", "groom", "date", "time", "venue", "message")

_TOKEN = re.compile(r"\{(\w+)\}")


def resolve_placeholders(
    content: str,
    values: Union[Mapping[str, str], BaseModel, None],
    missing: Literal["empty", "keep"] = "empty",
) -> str:
    """Substitute ``{field}`` tokens with project data.

    Known fields (see ``PLACEHOLDER_FIELDS``) without a value become an empty
    string, or stay as the literal token when ``missing="keep"``. Unknown
    tokens are never touched.
    """
    if isinstance(values, BaseModel):
        mapping: Mapping[str, str] = values.model_dump()
    else:
        mapping = values or {}

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in PLACEHOLDER_FIELDS:
            return match.group(0)
        value = mapping.get(key)
        if value:
            return str(value)
        return match.group(0) if missing == "keep" else ""

    return _TOKEN.sub(_replace, content)


def referenced_fields(content: str) -> Set[str]:
    return {key for key in _TOKEN.findall(content) if key in PLACEHOLDER_FIELDS}
