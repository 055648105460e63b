"""Client data redaction for DEBUG logs and storage dumps.

A client data blob is opaque apart from its ``home`` section and the
``clientId`` field.  Only the root location and node name are shown as
is; other ``home`` fields (tokens, credentials) and ``clientId`` are
masked.  Every other top-level field is reduced to its type and size.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

REDACTED = "<redacted>"

_VISIBLE_HOME_FIELDS: frozenset[str] = frozenset({"location", "nodeName"})


def _describe(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return f"<str:{len(value)}>"
    if isinstance(value, Mapping):
        return f"<object:{len(value)} keys>"
    if isinstance(value, (list, tuple)):
        return f"<list:{len(value)}>"
    return f"<{type(value).__name__}>"


def redact_client_data(data: Any) -> Any:
    """Return a copy of *data* that is safe to log.

    Anything other than a mapping is summarized like a top-level field.
    """
    if not isinstance(data, Mapping):
        return _describe(data)
    redacted: dict[str, Any] = {}
    for key, value in data.items():
        if key == "home" and isinstance(value, Mapping):
            redacted[key] = {
                field: field_value if field in _VISIBLE_HOME_FIELDS else REDACTED
                for field, field_value in value.items()
            }
        elif key == "clientId":
            redacted[key] = REDACTED
        else:
            redacted[key] = _describe(value)
    return redacted
