"""
Reporting module - Terminal output for listings and search results.
"""

from .formatter import ResultFormatter, format_currency


__all__ = [
    "ResultFormatter",
    "format_currency",
]
