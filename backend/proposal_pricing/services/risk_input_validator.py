"""
Risk factor input validator — screens free-form, user-supplied risk factor
inputs before any numeric processing.

Every entry is checked independently and all problems are reported at once.
Errors block the enhanced risk path; warnings never do.
"""
import math
import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from proposal_pricing import config

logger = logging.getLogger("proposal-pricing.validator")

RiskValue = Union[int, float, str, bool]

_INJECTION_RE = [re.compile(p, re.IGNORECASE) for p in config.INJECTION_PATTERNS]

NEGATIVE_POLICIES = ("warn", "error", "allow")


@dataclass(frozen=True)
class RiskFactorInput:
    value: RiskValue
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        out = {"value": self.value}
        if self.notes is not None:
            out["notes"] = self.notes
        return out


@dataclass(frozen=True)
class ValidationPolicy:
    """Thresholds applied by validate_risk_factor_inputs."""
    max_string_length: int = config.MAX_STRING_VALUE_LENGTH
    max_notes_length: int = config.MAX_NOTES_LENGTH
    extreme_value_threshold: float = config.EXTREME_VALUE_THRESHOLD
    negative_value_policy: str = config.NEGATIVE_VALUE_POLICY

    def __post_init__(self):
        if self.negative_value_policy not in NEGATIVE_POLICIES:
            raise ValueError(
                f"negative_value_policy must be one of {NEGATIVE_POLICIES}, "
                f"got {self.negative_value_policy!r}"
            )


@dataclass(frozen=True)
class ValidationOutcome:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    # Cleaned inputs; empty unless is_valid
    inputs: Dict[str, RiskFactorInput] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple, set)):
        return "array"
    return type(value).__name__


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_finite_float(value: Any) -> Optional[float]:
    """float(value) when it is finite; None for NaN, infinities and ints too large for a float."""
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def contains_malicious_content(text: str) -> bool:
    """True if text matches any injection/XSS signature."""
    return any(p.search(text) for p in _INJECTION_RE)


def _check_value(name: str, value: Any, policy: ValidationPolicy,
                 errors: List[str], warnings: List[str]) -> None:
    if isinstance(value, bool):
        return

    if _is_number(value):
        number = _as_finite_float(value)
        if number is None:
            # never interpolate the raw value: str() of a huge int can raise
            errors.append(
                f"Risk factor '{name}' has invalid numeric value "
                f"(non-finite or out of range {_type_name(value)})"
            )
            return
        if number < 0:
            if policy.negative_value_policy == "error":
                errors.append(f"Risk factor '{name}' has negative value ({number:g}), which is not allowed")
            elif policy.negative_value_policy == "warn":
                warnings.append(f"Risk factor '{name}' has negative value ({number:g}), which may be unintended")
        if abs(number) > policy.extreme_value_threshold:
            warnings.append(
                f"Risk factor '{name}' has unusually high value ({number:g}); "
                f"expected magnitude <= {policy.extreme_value_threshold:g}"
            )
        return

    if isinstance(value, str):
        if len(value) > policy.max_string_length:
            errors.append(
                f"Risk factor '{name}' has excessively long string value "
                f"({len(value)} characters, max {policy.max_string_length})"
            )
            return
        if contains_malicious_content(value):
            errors.append(f"Risk factor '{name}' contains potentially malicious content")
        return

    errors.append(
        f"Risk factor '{name}' has invalid value type: "
        f"Expected number, string, or boolean, got {_type_name(value)}"
    )


def _check_notes(name: str, entry: Mapping, policy: ValidationPolicy, errors: List[str]) -> None:
    notes = entry.get("notes")
    if notes is None:
        return
    if not isinstance(notes, str):
        errors.append(f"Risk factor '{name}' has invalid notes: expected string, got {_type_name(notes)}")
    elif len(notes) > policy.max_notes_length:
        errors.append(
            f"Risk factor '{name}' has excessively long notes "
            f"({len(notes)} characters, max {policy.max_notes_length})"
        )


def _clean(entry: Mapping) -> RiskFactorInput:
    value = entry["value"]
    if isinstance(value, str):
        value = value.strip()
    elif _is_number(value) and not isinstance(value, int):
        value = float(value)
    notes = entry.get("notes")
    return RiskFactorInput(value=value, notes=notes.strip() if isinstance(notes, str) else None)


def _duplicate_warnings(names: List[str]) -> List[str]:
    groups: Dict[str, List[str]] = {}
    for name in names:
        groups.setdefault(name.strip().casefold(), []).append(name)
    return [
        "Duplicate risk factor names detected (case/whitespace-insensitive): "
        + ", ".join(f"'{n}'" for n in group)
        for group in groups.values()
        if len(group) > 1
    ]


def validate_risk_factor_inputs(
    inputs: Optional[Mapping[str, Any]],
    policy: Optional[ValidationPolicy] = None,
) -> ValidationOutcome:
    """
    Validate a mapping of factor name -> {"value": ..., "notes": ...}.

    Returns a ValidationOutcome listing every error and warning found. When
    there are no errors the outcome also carries the cleaned inputs, keyed
    exactly as supplied.
    """
    policy = policy or ValidationPolicy()

    if inputs is None:
        return ValidationOutcome(is_valid=True)
    if not isinstance(inputs, Mapping):
        return ValidationOutcome(
            is_valid=False,
            errors=[f"Risk factor inputs must be a mapping of name to input, got {_type_name(inputs)}"],
        )

    errors: List[str] = []
    warnings: List[str] = []
    valid_names: List[str] = []

    for name, entry in inputs.items():
        if not isinstance(name, str) or not name.strip():
            # repr of a non-string key (a huge int, say) can itself fail
            shown = repr(name) if isinstance(name, str) else f"<{_type_name(name)}>"
            errors.append(f"Invalid risk factor name: {shown} (must be a non-empty string)")
            continue
        valid_names.append(name)

        if not isinstance(entry, Mapping) or "value" not in entry:
            errors.append(
                f"Invalid input structure for risk factor '{name}': "
                f"expected an object with a 'value' field, got {_type_name(entry)}"
            )
            continue

        _check_value(name, entry["value"], policy, errors, warnings)
        _check_notes(name, entry, policy, errors)

    warnings.extend(_duplicate_warnings(valid_names))

    if errors:
        logger.debug(f"Risk input validation failed: {len(errors)} error(s)")
        return ValidationOutcome(is_valid=False, errors=errors, warnings=warnings)

    cleaned = {name: _clean(entry) for name, entry in inputs.items()}
    return ValidationOutcome(is_valid=True, warnings=warnings, inputs=cleaned)
