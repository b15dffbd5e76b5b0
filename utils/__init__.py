"""
Utility modules for the adjustment engine.
"""

from .formatting import format_currency, format_quantity
from .config import Config

__all__ = ["format_currency", "format_quantity", "Config"]
