"""Composed application state.

One object owns every core component and is handed to the dashboard and
the headless runner. Nothing here is module-level.
"""

from dataclasses import dataclass
from typing import Optional

from core.autotrade import AutotradeController
from core.config import Settings
from core.config_store import ConfigStore
from core.credentials import CredentialManager
from core.errors import BitvisionError
from core.log_sink import LogSink, install_sink, remove_sink
from core.logging_utils import get_logger, setup_logging
from core.scheduler import RedrawFn, RefreshScheduler
from datafeeds.cache_reader import MarketDataCache
from execution.command_dispatcher import CommandDispatcher
from execution.process_runner import ProcessRunner

logger = get_logger(__name__)


@dataclass
class AppState:
    settings: Settings
    sink: LogSink
    store: ConfigStore
    credentials: CredentialManager
    autotrade: AutotradeController
    runner: ProcessRunner
    dispatcher: CommandDispatcher
    market: MarketDataCache
    scheduler: RefreshScheduler

    @classmethod
    def create(cls, settings: Settings, on_tick: Optional[RedrawFn] = None) -> "AppState":
        setup_logging(settings.log_level)
        sink = install_sink(LogSink(max_lines=settings.log_buffer_lines))

        store = ConfigStore(settings.config_path)
        credentials = CredentialManager(store)
        autotrade = AutotradeController(store)
        runner = ProcessRunner()
        dispatcher = CommandDispatcher(settings, runner, credentials)
        market = MarketDataCache(settings.cache_dir, max_headline_length=settings.max_headline_length)
        scheduler = RefreshScheduler(
            autotrade,
            dispatcher,
            refresh_data=market.reload,
            on_tick=on_tick,
            interval=settings.refresh_interval_seconds,
        )
        return cls(
            settings=settings,
            sink=sink,
            store=store,
            credentials=credentials,
            autotrade=autotrade,
            runner=runner,
            dispatcher=dispatcher,
            market=market,
            scheduler=scheduler,
        )

    async def start(self) -> None:
        """Create the default document if needed, then start ticking."""
        try:
            await self.store.ensure_exists()
        except BitvisionError as e:
            logger.error("[APP] Config unavailable at startup: %s", e)
        try:
            await self.store.load()
        except BitvisionError as e:
            logger.error("[APP] Config at %s needs attention: %s", self.store.path, e)
        self.scheduler.start()

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        await self.runner.shutdown()
        remove_sink(self.sink)
        logger.info("[APP] Shutdown complete")
