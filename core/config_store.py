"""
Config Store - single durable document for credentials and autotrade state.

All mutations go through ``update_atomic``, which holds one asyncio lock for
the whole read-modify-write so a credential save can never race an autotrade
toggle. Disk work runs in a worker thread so the render path never blocks.

Hardened for production:
- Atomic writes (temp file in the same directory, fsync, then rename)
- Schema validation on every load (no silent repair of corrupt files)
- Invariant validation before every write (rejected writes leave disk untouched)
"""

import asyncio
import json
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional

import fcntl
from pydantic import ValidationError

from core.errors import ConfigIOError, ConfigNotFound, CorruptConfig, ValidationFailed
from core.logging_utils import get_logger
from core.models import ConfigDocument, TradeSide

logger = get_logger(__name__)

Mutator = Callable[[ConfigDocument], Optional[ConfigDocument]]


def check_invariants(
    doc: ConfigDocument,
    now: float,
    previous: Optional[ConfigDocument] = None,
) -> None:
    """
    Raise ValidationFailed if ``doc`` may not be written.

    The future-timestamp rule only applies when the autotrade section is
    being changed; an unrelated credential update must still succeed while
    a schedule is due and waiting for the next tick.
    """
    auto = doc.autotrade
    if not auto.enabled:
        if (
            auto.next_trade_timestamp_utc != 0
            or auto.next_trade_amount != 0
            or auto.next_trade_side != TradeSide.NONE
        ):
            raise ValidationFailed("Disabled autotrade must have timestamp 0, amount 0 and side NONE")
        return

    if auto.next_trade_side not in (TradeSide.BUY, TradeSide.SELL):
        raise ValidationFailed(f"Enabled autotrade needs side BUY or SELL, got {auto.next_trade_side.value!r}")
    if auto.next_trade_amount <= 0:
        raise ValidationFailed(f"Enabled autotrade needs amount > 0, got {auto.next_trade_amount}")

    changed = previous is None or previous.autotrade != auto
    if changed and auto.next_trade_timestamp_utc <= now:
        raise ValidationFailed(
            f"Next trade timestamp {auto.next_trade_timestamp_utc} is not in the future (now={int(now)})"
        )


class ConfigStore:
    """
    File-backed store for the configuration document.

    Usage:
        store = ConfigStore(Path(".bitvision.json"))
        doc = await store.update_atomic(lambda d: d.with_credentials(creds))
    """

    def __init__(self, path: Path, clock: Callable[[], float] = time.time):
        self.path = Path(path)
        self._clock = clock
        self._lock = asyncio.Lock()

    # === Disk helpers (run in worker threads) ===

    def _read_sync(self) -> ConfigDocument:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    content = f.read()
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError as e:
            raise ConfigNotFound(f"No config document at {self.path}") from e
        except OSError as e:
            raise ConfigIOError(f"Failed to read {self.path}: {e}") from e

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise CorruptConfig(f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise CorruptConfig(f"{self.path} must hold a JSON object")

        try:
            return ConfigDocument.from_dict(data)
        except ValidationError as e:
            raise CorruptConfig(f"{self.path} does not match the config schema: {e}") from e

    def _write_sync(self, doc: ConfigDocument) -> None:
        """Write to a temp file in the same directory, then rename over the target."""
        temp_fd = None
        temp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # mkstemp creates the file 0600, which suits credentials
            temp_fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=f".{self.path.name}_",
                suffix=".tmp",
            )
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                temp_fd = None  # fdopen takes ownership
                json.dump(doc.to_dict(), f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_path, self.path)
            temp_path = None
        except OSError as e:
            raise ConfigIOError(f"Failed to write {self.path}: {e}") from e
        finally:
            if temp_fd is not None:
                try:
                    os.close(temp_fd)
                except OSError:
                    pass
            if temp_path is not None:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass

    def _delete_sync(self) -> bool:
        try:
            self.path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ConfigIOError(f"Failed to delete {self.path}: {e}") from e

    # === Public API ===

    def exists(self) -> bool:
        return self.path.exists()

    async def load(self) -> ConfigDocument:
        """Read and validate the stored document. Raises ConfigNotFound if absent."""
        try:
            return await asyncio.to_thread(self._read_sync)
        except ConfigNotFound:
            raise
        except (CorruptConfig, ConfigIOError) as e:
            logger.error("[CONFIG] %s", e)
            raise

    async def save(self, doc: ConfigDocument) -> None:
        """Replace the stored document with ``doc``."""
        async with self._lock:
            await self._save_unlocked(doc)

    async def _save_unlocked(self, doc: ConfigDocument) -> None:
        try:
            await asyncio.to_thread(self._write_sync, doc)
        except ConfigIOError as e:
            logger.error("[CONFIG] %s", e)
            raise
        logger.debug("[CONFIG] Saved %s", self.path)

    async def update_atomic(self, mutator: Mutator, now: Optional[float] = None) -> ConfigDocument:
        """
        Read-modify-write under the store lock.

        ``mutator`` receives the current document (the default document when
        none is stored) and returns the replacement. Returning None or the
        same object means "no change": nothing is written and the current
        document is returned.
        """
        async with self._lock:
            try:
                current = await asyncio.to_thread(self._read_sync)
                existed = True
            except ConfigNotFound:
                current = ConfigDocument.default()
                existed = False
            except (CorruptConfig, ConfigIOError) as e:
                logger.error("[CONFIG] Update aborted: %s", e)
                raise

            updated = mutator(current)
            if updated is None or updated is current:
                return current

            ts = self._clock() if now is None else now
            try:
                check_invariants(updated, ts, previous=current if existed else None)
            except ValidationFailed as e:
                logger.warning("[CONFIG] Rejected update: %s", e)
                raise

            await self._save_unlocked(updated)
            return updated

    async def ensure_exists(self) -> bool:
        """Create the default document if none is stored. Returns True if created."""
        async with self._lock:
            if await asyncio.to_thread(self.path.exists):
                return False
            logger.info("[CONFIG] No config found at %s, creating default", self.path)
            await self._save_unlocked(ConfigDocument.default())
            return True

    async def clear(self) -> None:
        """Delete the stored document (credentials and autotrade state)."""
        async with self._lock:
            try:
                removed = await asyncio.to_thread(self._delete_sync)
            except ConfigIOError as e:
                logger.error("[CONFIG] %s", e)
                raise
        if removed:
            logger.info("[CONFIG] %s deleted", self.path)
        else:
            logger.info("[CONFIG] %s already absent", self.path)
