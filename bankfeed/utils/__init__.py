"""
Shared helpers for inbound payload handling.
"""

from .normalization import available_names, find_by_name, normalize_name
from .parsing import parse_date, parse_decimal

__all__ = [
    "available_names",
    "find_by_name",
    "normalize_name",
    "parse_date",
    "parse_decimal",
]
