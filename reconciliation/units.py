"""Unit of measure helpers for stage quantity conversion."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class UnitKind(str, Enum):
    SHEET = "sheets"
    CARTON = "cartoon"
    BOX = "box"
    OTHER = "other"


_UNIT_ALIASES = {
    "sht": UnitKind.SHEET,
    "sheet": UnitKind.SHEET,
    "sheets": UnitKind.SHEET,
    "cartoon": UnitKind.CARTON,
    "carton": UnitKind.CARTON,
    "box": UnitKind.BOX,
    "boxes": UnitKind.BOX,
}

# (from, to) -> operation applied with the number-up multiplier
_CONVERSIONS = {
    (UnitKind.SHEET, UnitKind.CARTON): "multiply",
    (UnitKind.CARTON, UnitKind.SHEET): "divide",
}


@dataclass(frozen=True)
class Unit:
    kind: UnitKind
    code: str

    @property
    def is_sheet(self) -> bool:
        return self.kind is UnitKind.SHEET

    @property
    def is_packaging(self) -> bool:
        return self.kind is UnitKind.CARTON

    def __str__(self) -> str:
        return self.code


SHEETS = Unit(UnitKind.SHEET, UnitKind.SHEET.value)
CARTON = Unit(UnitKind.CARTON, UnitKind.CARTON.value)
BOX = Unit(UnitKind.BOX, UnitKind.BOX.value)


def parse_unit(value: object) -> Unit:
    """Return the :class:`Unit` for a stored unit code.

    Known codes are matched case-insensitively and normalised to their
    canonical spelling; anything else is kept verbatim as ``OTHER``.
    """

    if isinstance(value, Unit):
        return value
    text = "" if value is None else str(value).strip()
    kind = _UNIT_ALIASES.get(text.lower())
    if kind is None:
        return Unit(UnitKind.OTHER, text)
    return Unit(kind, kind.value)


def is_sheet_unit(value: object) -> bool:
    return parse_unit(value).is_sheet


def is_packaging_unit(value: object) -> bool:
    return parse_unit(value).is_packaging


def _multiplier(value: object) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number <= 0:
        return None
    return number


def convert_unit(qty: float, from_unit: object, to_unit: object, multiplier: object) -> float:
    """Convert ``qty`` between two units using the number-up ``multiplier``.

    Pairs without an entry in the conversion table, and multipliers that are
    missing or not positive, leave the quantity unchanged.
    """

    factor = _multiplier(multiplier)
    if factor is None:
        return qty
    operation = _CONVERSIONS.get((parse_unit(from_unit).kind, parse_unit(to_unit).kind))
    if operation == "multiply":
        return qty * factor
    if operation == "divide":
        return qty / factor
    return qty


def to_output_unit(qty: float, input_unit: object, output_unit: object, number_up: object) -> float:
    if parse_unit(input_unit).is_sheet and parse_unit(output_unit).is_packaging:
        return convert_unit(qty, SHEETS, CARTON, number_up)
    return qty


def to_input_unit(qty: float, input_unit: object, output_unit: object, number_up: object) -> float:
    if parse_unit(input_unit).is_sheet and parse_unit(output_unit).is_packaging:
        return convert_unit(qty, CARTON, SHEETS, number_up)
    return qty


__all__ = [
    "BOX",
    "CARTON",
    "SHEETS",
    "Unit",
    "UnitKind",
    "convert_unit",
    "is_packaging_unit",
    "is_sheet_unit",
    "parse_unit",
    "to_input_unit",
    "to_output_unit",
]
