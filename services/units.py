"""Table-driven unit conversion for station readings."""

from __future__ import annotations

from typing import Callable, Dict

from models.errors import UnsupportedConversion

_METERS_TO_FEET = 3.28084
_MPS_TO_MPH = 2.2369


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9 / 5 + 32


def fahrenheit_to_celsius(fahrenheit: float) -> float:
    return (fahrenheit - 32) * 5 / 9


def _identity(value: float) -> float:
    return value


class UnitConverter:
    """Converts values between the units stations report and the units we serve."""

    conversions: Dict[str, Dict[str, Callable[[float], float]]] = {
        "c": {"f": celsius_to_fahrenheit},
        "f": {"c": fahrenheit_to_celsius},
        "m": {"ft": lambda meters: meters * _METERS_TO_FEET},
        "ft": {"m": lambda feet: feet / _METERS_TO_FEET},
        "m/s": {"mph": lambda mps: mps * _MPS_TO_MPH},
        "mph": {"m/s": lambda mph: mph / _MPS_TO_MPH},
        # Formazin nephelometric and turbidity units read the same on our sensors.
        "fnu": {"ntu": _identity},
        "ntu": {"fnu": _identity},
    }

    @classmethod
    def supports(cls, from_unit: str, to_unit: str) -> bool:
        source, target = from_unit.strip().lower(), to_unit.strip().lower()
        return source == target or target in cls.conversions.get(source, {})

    @classmethod
    def convert(cls, value: float, from_unit: str, to_unit: str) -> float:
        source, target = from_unit.strip().lower(), to_unit.strip().lower()
        if source == target:
            return value
        try:
            conversion = cls.conversions[source][target]
        except KeyError:
            raise UnsupportedConversion(from_unit, to_unit) from None
        return conversion(value)
