import math
from typing import Optional

UNITS = ("celsius", "fahrenheit")


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9 / 5 + 32


def fahrenheit_to_celsius(fahrenheit: float) -> float:
    return (fahrenheit - 32) * 5 / 9


def normalize_unit(unit: Optional[str], default: str = "celsius") -> str:
    if not unit:
        return default
    unit = unit.strip().lower()
    if unit in ("c", "metric"):
        return "celsius"
    if unit in ("f", "imperial"):
        return "fahrenheit"
    if unit not in UNITS:
        raise ValueError(f"Unknown temperature unit: {unit}")
    return unit


def format_temperature(value: Optional[float], unit: str = "celsius") -> Optional[int]:
    """Round a Celsius reading for display in the requested unit."""
    if value is None:
        return None
    if normalize_unit(unit) == "fahrenheit":
        value = celsius_to_fahrenheit(value)
    # half-up rounding
    return math.floor(value + 0.5)


def unit_symbol(unit: str) -> str:
    return "°F" if normalize_unit(unit) == "fahrenheit" else "°C"
