"""Canonical, comparable descriptions of a level formula.

A descriptor is ``(type, params)`` where ``params`` is ``key=value`` pairs
joined with ``;`` in sorted key order. Numbers use Python's shortest
round-trip representation; the custom expression and its constants are
URL-safe base64 without padding. Two descriptors are equal exactly when
the formulas they describe are.

The table variant records only the table's file name. Editing the file in
place does not change the descriptor.
"""

from __future__ import annotations

import base64
import binascii
import math
from dataclasses import dataclass

from levelcore.config import DEFAULT_MAX_LEVEL
from levelcore.exceptions import DescriptorError
from levelcore.formulas.base import FormulaType
from levelcore.formulas.variants import (
    CustomFormula,
    ExponentialFormula,
    LevelFormula,
    LinearFormula,
    TableFormula,
)

META_TYPE_KEY = "formula.type"
META_PARAMS_KEY = "formula.params"

# key -> required; optional keys fall back to their documented defaults
_SCHEMA: dict[FormulaType, dict[str, bool]] = {
    FormulaType.EXPONENTIAL: {"baseXp": True, "exponent": True, "maxLevel": False},
    FormulaType.LINEAR: {"xpPerLevel": True, "maxLevel": False},
    FormulaType.TABLE: {"file": True},
    FormulaType.CUSTOM: {"exprB64": True, "constB64": False, "maxLevel": False},
}


@dataclass(frozen=True)
class FormulaDescriptor:
    type: str
    params: str

    def to_meta(self) -> dict[str, str]:
        return {META_TYPE_KEY: self.type, META_PARAMS_KEY: self.params}


def describe(formula: LevelFormula) -> FormulaDescriptor:
    """Encode a formula into its canonical descriptor."""
    if isinstance(formula, ExponentialFormula):
        fields = {
            "baseXp": _fmt_float(formula.base_xp),
            "exponent": _fmt_float(formula.exponent),
            "maxLevel": str(formula.max_level),
        }
    elif isinstance(formula, LinearFormula):
        fields = {"xpPerLevel": str(formula.xp_per_level), "maxLevel": str(formula.max_level)}
    elif isinstance(formula, TableFormula):
        fields = {"file": formula.source}
    elif isinstance(formula, CustomFormula):
        fields = {
            "exprB64": _b64(formula.expression),
            "constB64": _encode_constants(formula.constants),
            "maxLevel": str(formula.max_level),
        }
    else:
        msg = f"Cannot describe {type(formula).__name__}"
        raise TypeError(msg)

    params = ";".join(f"{key}={fields[key]}" for key in sorted(fields))
    return FormulaDescriptor(type=formula.formula_type.value, params=params)


@dataclass(frozen=True)
class DecodedParams:
    """Typed construction parameters recovered from a descriptor."""

    type: FormulaType
    base_xp: float | None = None
    exponent: float | None = None
    xp_per_level: int | None = None
    file: str | None = None
    expression: str | None = None
    constants: dict[str, float] | None = None
    max_level: int = DEFAULT_MAX_LEVEL


def decode(descriptor: FormulaDescriptor) -> DecodedParams:
    """Exact inverse of ``describe``. Malformed input raises DescriptorError."""
    try:
        formula_type = FormulaType(descriptor.type.strip().upper())
    except ValueError:
        msg = f"Unknown stored formula type {descriptor.type!r}"
        raise DescriptorError(msg) from None

    fields = _split_params(descriptor.params)
    schema = _SCHEMA[formula_type]
    for key in fields:
        if key not in schema:
            msg = f"Unexpected key '{key}' in {formula_type.value} descriptor params {descriptor.params!r}"
            raise DescriptorError(msg)
    for key, required in schema.items():
        if required and key not in fields:
            msg = f"Missing key '{key}' in {formula_type.value} descriptor params {descriptor.params!r}"
            raise DescriptorError(msg)

    max_level = _parse_int(fields["maxLevel"], "maxLevel") if "maxLevel" in fields else DEFAULT_MAX_LEVEL

    if formula_type is FormulaType.EXPONENTIAL:
        return DecodedParams(
            type=formula_type,
            base_xp=_parse_float(fields["baseXp"], "baseXp"),
            exponent=_parse_float(fields["exponent"], "exponent"),
            max_level=max_level,
        )
    if formula_type is FormulaType.LINEAR:
        return DecodedParams(
            type=formula_type,
            xp_per_level=_parse_int(fields["xpPerLevel"], "xpPerLevel"),
            max_level=max_level,
        )
    if formula_type is FormulaType.TABLE:
        if not fields["file"]:
            msg = "Empty 'file' in TABLE descriptor params"
            raise DescriptorError(msg)
        return DecodedParams(type=formula_type, file=fields["file"])

    return DecodedParams(
        type=formula_type,
        expression=_unb64(fields["exprB64"]),
        constants=_decode_constants(fields.get("constB64", "")),
        max_level=max_level,
    )


def _split_params(params: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    if not params:
        return fields
    for part in params.split(";"):
        key, sep, value = part.partition("=")
        if not sep or not key:
            msg = f"Malformed descriptor field {part!r} in {params!r}"
            raise DescriptorError(msg)
        if key in fields:
            msg = f"Duplicate descriptor field '{key}' in {params!r}"
            raise DescriptorError(msg)
        fields[key] = value
    return fields


def _fmt_float(value: float) -> str:
    return repr(float(value))


def _parse_float(raw: str, key: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        msg = f"Descriptor field '{key}' is not a number: {raw!r}"
        raise DescriptorError(msg) from None
    if not math.isfinite(value):
        msg = f"Descriptor field '{key}' must be finite: {raw!r}"
        raise DescriptorError(msg)
    return value


def _parse_int(raw: str, key: str) -> int:
    try:
        return int(raw)
    except ValueError:
        msg = f"Descriptor field '{key}' is not an integer: {raw!r}"
        raise DescriptorError(msg) from None


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _unb64(raw: str) -> str:
    padded = raw + "=" * (-len(raw) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        msg = f"Invalid base64 in descriptor: {raw!r}"
        raise DescriptorError(msg) from exc


def _encode_constants(constants: dict[str, float] | None) -> str:
    if not constants:
        return ""
    raw = ",".join(f"{name}={_fmt_float(constants[name])}" for name in sorted(constants))
    return _b64(raw)


def _decode_constants(raw: str) -> dict[str, float]:
    constants: dict[str, float] = {}
    if not raw:
        return constants
    for part in _unb64(raw).split(","):
        name, sep, value = part.partition("=")
        if not sep or not name:
            msg = f"Malformed constant {part!r} in descriptor"
            raise DescriptorError(msg)
        constants[name] = _parse_float(value, f"constant {name}")
    return constants
