"""Typed data models for the dashboard core."""

from core.models.document import AutotradeSettings, ConfigDocument, Credentials, TradeSide

__all__ = [
    "AutotradeSettings",
    "ConfigDocument",
    "Credentials",
    "TradeSide",
]
