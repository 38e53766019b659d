"""Session Variable Rules: turn an RLS context into ordered (name, value) pairs.

Invariants:
    - Output order == context insertion order
    - None values are skipped, never sent as empty strings
    - Conversion is per-variant and locale independent:
        str   -> unchanged
        bool  -> "true" / "false"      (checked before int: bool is an int subclass)
        int   -> str(value)
        float -> repr(value); NaN and infinities rejected
      any other type raises InvalidSessionVariableError
    - Names are "{prefix}.{key}", both parts matching [A-Za-z_][A-Za-z0-9_]*

Design Decisions:
    - Pure module: validation happens before any transaction is opened
"""

import math
import re
from collections.abc import Mapping
from typing import Union

from txledger.core.errors import InvalidSessionVariableError

RlsValue = Union[str, int, float, bool, None]
RlsContext = Mapping[str, RlsValue]

DEFAULT_PREFIX = "app"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def variable_name(prefix: str, key: str) -> str:
    """Build the fully-qualified setting name, validating both parts."""
    if not isinstance(prefix, str) or not _IDENTIFIER.match(prefix):
        raise InvalidSessionVariableError(
            f"Invalid session variable prefix: {prefix!r}", str(prefix),
        )
    if not isinstance(key, str) or not _IDENTIFIER.match(key):
        raise InvalidSessionVariableError(
            f"Invalid session variable key: {key!r}", f"{prefix}.{key}",
        )
    return f"{prefix}.{key}"


def format_value(name: str, value: RlsValue) -> str | None:
    """Stringify a scalar for set_config. Returns None for values to skip."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise InvalidSessionVariableError(
                f"Session variable {name} must be a finite number", name,
            )
        return repr(value)
    raise InvalidSessionVariableError(
        f"Session variable {name} has unsupported type {type(value).__name__}",
        name,
    )


def build_assignments(
    context: RlsContext, prefix: str = DEFAULT_PREFIX,
) -> list[tuple[str, str]]:
    """Resolve every non-None entry of context into (name, value) pairs."""
    assignments = []
    for key, value in context.items():
        name = variable_name(prefix, key)
        formatted = format_value(name, value)
        if formatted is not None:
            assignments.append((name, formatted))
    return assignments
