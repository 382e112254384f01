"""
Template Resolver

Rewrites step parameters using outputs of earlier steps.

    {key}        -> formatted output bound to output_key "key"
    {key.field}  -> a field of that step's structured output
                    (dotted paths reach nested values)

Unresolved references expand to "" so an upstream skip degrades the
text instead of failing the step. Only top-level string values are
rewritten; other values pass through untouched.
"""

import json
import logging
import re
from typing import Any, Dict, Mapping, Optional, Tuple

from schemas.result import StepOutput

logger = logging.getLogger(__name__)

_TEMPLATE_RE = re.compile(r"\{([A-Za-z_][\w-]*)((?:\.[\w-]+)*)\}")

_MISSING = object()


class TemplateResolver:
    """
    Substitutes {key} / {key.field} placeholders in step params.
    """

    def resolve(
        self,
        params: Mapping[str, Any],
        outputs: Mapping[str, StepOutput],
        step_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Return a new params dict with every placeholder substituted.

        Args:
            params: Raw step params
            outputs: Output-key bindings produced so far
            step_id: Step being resolved (for log context only)
        """
        resolved: Dict[str, Any] = {}
        for name, value in params.items():
            if isinstance(value, str):
                resolved[name] = self.resolve_text(value, outputs, step_id=step_id)
            else:
                resolved[name] = value
        return resolved

    def resolve_text(
        self,
        text: str,
        outputs: Mapping[str, StepOutput],
        step_id: Optional[str] = None,
    ) -> str:
        def _sub(match: "re.Match[str]") -> str:
            key, path = match.group(1), match.group(2)
            value = lookup(outputs, key, path[1:] if path else "")
            if value is _MISSING:
                logger.warning(
                    f"Unresolved template {match.group(0)} in step {step_id!r}; using empty string"
                )
                return ""
            return render(value)

        return _TEMPLATE_RE.sub(_sub, text)

    @staticmethod
    def references(params: Mapping[str, Any]) -> Tuple[str, ...]:
        """Output keys referenced by string params, in order of appearance."""
        keys = []
        for value in params.values():
            if isinstance(value, str):
                keys.extend(m.group(1) for m in _TEMPLATE_RE.finditer(value))
        return tuple(dict.fromkeys(keys))


def lookup(outputs: Mapping[str, StepOutput], key: str, path: str) -> Any:
    output = outputs.get(key)
    if output is None:
        return _MISSING
    if not path:
        return output.formatted
    return get_path(output.fields, path, default=_MISSING)


def get_path(data: Any, path: str, default: Any = None) -> Any:
    """Walk a dotted path through mappings and sequences."""
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def render(value: Any) -> str:
    """Text form of a substituted value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)
