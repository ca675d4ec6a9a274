"""Variable interpolation for apply-specs.

Specs may reference variables as ``((name))``. A value that is exactly one
placeholder is replaced by the variable's value whatever its type; a
placeholder embedded in a longer string is substituted as text.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping
from typing import Any, Protocol

from fleetwarden.errors import VariableNotFound

_PLACEHOLDER = re.compile(r"\(\(\s*(!?[\w./:-]+)\s*\)\)")


class VariablesInterpolator(Protocol):
    """Resolves variable placeholders in a raw spec."""

    def interpolate(self, raw: Any) -> Any:
        ...


class MappingVariablesInterpolator:
    """Interpolates placeholders from a fixed mapping of variable values.

    Args:
        variables: Variable values keyed by name. A leading ``!`` in a
            placeholder is ignored when looking names up.
    """

    def __init__(self, variables: Mapping[str, Any] | None = None) -> None:
        self._variables = dict(variables or {})

    def _lookup(self, name: str) -> Any:
        key = name.lstrip("!")
        if key not in self._variables:
            raise VariableNotFound(f"Failed to find variable '{key}'")
        return self._variables[key]

    def _interpolate_string(self, value: str) -> Any:
        whole = _PLACEHOLDER.fullmatch(value.strip())
        if whole is not None:
            return copy.deepcopy(self._lookup(whole.group(1)))
        return _PLACEHOLDER.sub(lambda m: str(self._lookup(m.group(1))), value)

    def interpolate(self, raw: Any) -> Any:
        if isinstance(raw, str):
            return self._interpolate_string(raw)
        if isinstance(raw, dict):
            return {k: self.interpolate(v) for k, v in raw.items()}
        if isinstance(raw, list):
            return [self.interpolate(v) for v in raw]
        return raw
