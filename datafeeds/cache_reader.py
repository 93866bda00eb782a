"""
Market Data Cache Reader

Reads the JSON cache files the external refresh command writes:
- headlines.json    {"name": "HEADLINES", "data": [[date, title, sentiment], ...]}
- indicators.json   {"name": "TECHNICAL_INDICATORS", "data": [[name, value, signal], ...]}
- blockchain.json   {"name": "BLOCKCHAIN_DATA", "data": [[name, value], ...]}
- price_data.json   {"fetching": bool, "data": [{last, high, low, open, volume, timestamp}, ...]}

A missing or unreadable file keeps the previous snapshot for that table.
"""

import asyncio
import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from core.logging_utils import get_logger

logger = get_logger(__name__)

HEADLINES_FILE = "headlines.json"
INDICATORS_FILE = "indicators.json"
BLOCKCHAIN_FILE = "blockchain.json"
PRICE_FILE = "price_data.json"


def trim_if_longer_than(text: str, length: int) -> str:
    """Truncate ``text`` to ``length`` characters."""
    if len(text) > length:
        return text[:length]
    return text


@dataclass(frozen=True)
class MarketSnapshot:
    headlines: tuple[tuple[str, ...], ...] = ()
    technical: tuple[tuple[str, ...], ...] = ()
    blockchain: tuple[tuple[str, ...], ...] = ()
    prices: tuple[dict, ...] = ()
    fetching: bool = False
    loaded_at: Optional[datetime] = None

    @property
    def last_price(self) -> Optional[float]:
        if not self.prices:
            return None
        try:
            return float(self.prices[0].get("last"))
        except (TypeError, ValueError):
            return None


@dataclass
class MarketDataCache:
    """Holds the latest snapshot read from ``cache_dir``."""
    cache_dir: Path
    max_headline_length: int = 35
    snapshot: MarketSnapshot = field(default_factory=MarketSnapshot)

    def _read_json(self, name: str) -> Optional[dict]:
        path = Path(self.cache_dir) / name
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.debug("[DATA] %s not found", path)
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("[DATA] Failed to read %s: %s", path, e)
            return None
        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            logger.warning("[DATA] %s has no data list", path)
            return None
        return data

    @staticmethod
    def _rows(data: dict) -> tuple[tuple[str, ...], ...]:
        return tuple(
            tuple(str(cell) for cell in row)
            for row in data["data"]
            if isinstance(row, (list, tuple))
        )

    def _load_sync(self) -> MarketSnapshot:
        current = self.snapshot
        updates: dict = {}

        headlines = self._read_json(HEADLINES_FILE)
        if headlines is not None:
            rows = []
            for row in self._rows(headlines):
                if len(row) >= 2:
                    row = (row[0], trim_if_longer_than(row[1], self.max_headline_length), *row[2:])
                rows.append(row)
            updates["headlines"] = tuple(rows)

        technical = self._read_json(INDICATORS_FILE)
        if technical is not None:
            updates["technical"] = self._rows(technical)

        blockchain = self._read_json(BLOCKCHAIN_FILE)
        if blockchain is not None:
            updates["blockchain"] = self._rows(blockchain)

        prices = self._read_json(PRICE_FILE)
        if prices is not None:
            updates["prices"] = tuple(p for p in prices["data"] if isinstance(p, dict))
            updates["fetching"] = bool(prices.get("fetching", False))

        if not updates:
            return current
        updates["loaded_at"] = datetime.now(timezone.utc)
        return replace(current, **updates)

    async def reload(self) -> MarketSnapshot:
        """Re-read every cache file off the event loop."""
        self.snapshot = await asyncio.to_thread(self._load_sync)
        return self.snapshot
