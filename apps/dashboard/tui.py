"""
Bitvision Textual Dashboard.

Panels:
- Headlines, technical and blockchain indicator tables (from the data cache)
- Price and autotrade status with the next-trade countdown
- Log panel tailing the shared log sink

Every operator action maps onto one core operation; failures are logged to
the sink and shown as a notification.
"""

from datetime import datetime, timezone
from typing import Awaitable, Optional

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Header, Label, RichLog, Static

from apps.dashboard.screens import (
    AmountScreen,
    AutotradeScreen,
    ConfirmScreen,
    HelpScreen,
    LoginScreen,
)
from core.app_state import AppState
from core.errors import BitvisionError
from core.logging_utils import get_logger, suppress_console_logging
from core.models import AutotradeSettings
from datafeeds.cache_reader import MarketSnapshot

logger = get_logger(__name__)

VERSION = "v0.2"

CLEAR_WARNING = (
    "[bold red]Clear credentials?[/]\n\n"
    "This deletes the whole config file: your API key, secret and passphrase "
    "[bold]and any scheduled autotrade[/]. A pending trade will not run."
)

LEVEL_STYLES = {
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red bold",
    "DEBUG": "dim",
}


class StatusBar(Static):
    """Top status bar: credentials, autotrade, clock."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.has_credentials = False
        self.autotrade: AutotradeSettings = AutotradeSettings.disabled()

    def render(self) -> str:
        creds = "[green]CREDS OK[/]" if self.has_credentials else "[red]NO CREDS[/]"
        auto = "[green]AUTO ON[/]" if self.autotrade.enabled else "[yellow]AUTO OFF[/]"
        return (
            f"[bold]BITVISION[/] {VERSION} │ {creds} │ {auto} │ "
            f"[dim]{datetime.now(timezone.utc).strftime('%H:%M:%S')} UTC[/]"
        )


class PricePanel(Static):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.snapshot = MarketSnapshot()

    def render(self) -> str:
        s = self.snapshot
        if not s.prices:
            return "[dim]Waiting for price data...[/]"
        latest = s.prices[0]
        fetching = " [yellow](fetching)[/]" if s.fetching else ""
        return (
            f"Last:   [bold]{latest.get('last', '?')}[/]{fetching}\n"
            f"High:   [green]{latest.get('high', '?')}[/]\n"
            f"Low:    [red]{latest.get('low', '?')}[/]\n"
            f"Open:   {latest.get('open', '?')}\n"
            f"Volume: {latest.get('volume', '?')}"
        )


class AutotradePanel(Static):
    """Autotrade schedule and minutes until the next trade."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.settings: AutotradeSettings = AutotradeSettings.disabled()
        self.minutes_left = 0

    def render(self) -> str:
        a = self.settings
        if not a.enabled:
            return "[yellow]Autotrading disabled[/]\n\nMinutes until next trade: [dim]----[/]"
        due = datetime.fromtimestamp(a.next_trade_timestamp_utc, tz=timezone.utc)
        side_color = "green" if a.next_trade_side.value == "BUY" else "red"
        return (
            f"[green]Autotrading enabled[/]\n"
            f"Next: [{side_color}]{a.next_trade_side.value}[/] {a.next_trade_amount} BTC\n"
            f"At:   {due.strftime('%Y-%m-%d %H:%M')} UTC\n\n"
            f"Minutes until next trade: [bold]{self.minutes_left:04d}[/]"
        )


class BitvisionDashboard(App):
    """Main Textual TUI application."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 3 3;
        grid-rows: 1 1fr 1fr;
    }

    #status-bar { column-span: 3; height: 1; padding: 0 1; }

    #headlines { border: solid red; }
    #technical { border: solid red; }
    #blockchain { border: solid red; }
    #price { border: solid yellow; padding: 0 1; }
    #autotrade { border: solid blue; padding: 0 1; }
    #logs { border: solid white; }

    DataTable { height: 1fr; }

    .panel-title { text-style: bold; padding: 0 1; }
    """

    BINDINGS = [
        ("t", "autotrade", "Autotrading"),
        ("r", "refresh_data", "Refresh"),
        ("l", "login", "Login"),
        ("c", "clear_credentials", "Clear Creds"),
        ("b", "buy", "Buy BTC"),
        ("s", "sell", "Sell BTC"),
        ("m", "retrain", "Retrain"),
        ("h", "help", "Help"),
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(self, state: AppState):
        super().__init__()
        self.state = state
        self._last_log_seq = 0
        self._last_snapshot_at: Optional[datetime] = None
        self._shutting_down = False

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield StatusBar(id="status-bar")

        yield Container(
            Label("Headlines", classes="panel-title"),
            DataTable(id="headlines-table"),
            id="headlines",
        )
        yield Container(
            Label("Technical Indicators", classes="panel-title"),
            DataTable(id="technical-table"),
            id="technical",
        )
        yield Container(
            Label("Blockchain Indicators", classes="panel-title"),
            DataTable(id="blockchain-table"),
            id="blockchain",
        )
        yield Container(
            Label("Exchange Rate", classes="panel-title"),
            PricePanel(id="price-panel"),
            id="price",
        )
        yield Container(
            Label("Autotrade", classes="panel-title"),
            AutotradePanel(id="autotrade-panel"),
            id="autotrade",
        )
        yield Container(
            Label("Log", classes="panel-title"),
            RichLog(id="log-view", max_lines=self.state.settings.log_buffer_lines, markup=True, wrap=True),
            id="logs",
        )
        yield Footer()

    async def on_mount(self) -> None:
        self.query_one("#headlines-table", DataTable).add_columns("Date", "Title", "Sentiment")
        self.query_one("#technical-table", DataTable).add_columns("Name", "Value", "Signal")
        self.query_one("#blockchain-table", DataTable).add_columns("Name", "Value")
        for table in self.query(DataTable):
            table.zebra_stripes = True

        suppress_console_logging(True)
        self.state.scheduler.on_tick = self.request_redraw
        await self.state.start()
        # Log tail and clock between scheduler ticks
        self.set_interval(0.5, self._tail_logs)
        self.query_one("#headlines-table", DataTable).focus()

    # === Redraw ===

    def request_redraw(self) -> None:
        """Scheduler tick hook."""
        self._update_tables()
        self._tail_logs()
        self.run_worker(self._update_status(), exclusive=True, group="status")

    def _update_tables(self) -> None:
        snapshot = self.state.market.snapshot
        price_panel = self.query_one(PricePanel)
        price_panel.snapshot = snapshot
        price_panel.refresh()

        if snapshot.loaded_at is None or snapshot.loaded_at == self._last_snapshot_at:
            return
        self._last_snapshot_at = snapshot.loaded_at

        for table_id, rows in (
            ("#headlines-table", snapshot.headlines),
            ("#technical-table", snapshot.technical),
            ("#blockchain-table", snapshot.blockchain),
        ):
            table = self.query_one(table_id, DataTable)
            width = len(table.columns)
            table.clear()
            for row in rows:
                cells = (list(row) + [""] * width)[:width]
                table.add_row(*cells)

    async def _update_status(self) -> None:
        try:
            settings = await self.state.autotrade.get_settings()
            minutes = await self.state.autotrade.minutes_until_next_trade()
            has_creds = await self.state.credentials.has_valid_credentials()
        except BitvisionError:
            # Already logged by the store
            return
        panel = self.query_one(AutotradePanel)
        panel.settings = settings
        panel.minutes_left = minutes
        panel.refresh()

        bar = self.query_one(StatusBar)
        bar.has_credentials = has_creds
        bar.autotrade = settings
        bar.refresh()

    def _tail_logs(self) -> None:
        log_view = self.query_one("#log-view", RichLog)
        for entry in self.state.sink.since(self._last_log_seq):
            style = LEVEL_STYLES.get(entry.level, "dim")
            log_view.write(f"[{style}]{entry.ts.strftime('%H:%M:%S')}[/] {escape(entry.message)}")
            self._last_log_seq = entry.seq
        self.query_one(StatusBar).refresh()

    # === Operator actions ===

    async def _guard(self, label: str, operation: Awaitable) -> object:
        try:
            return await operation
        except BitvisionError as e:
            logger.error("[UI] %s failed: %s", label, e)
            self.notify(f"{label} failed: {e}", severity="error")
            return None
        finally:
            self.request_redraw()

    def action_login(self) -> None:
        logger.info("[UI] Login")

        def _on_result(creds: Optional[dict]) -> None:
            if creds is None:
                logger.info("[UI] No credentials entered, aborting login")
                return
            self.run_worker(self._login(creds))

        self.push_screen(LoginScreen(), _on_result)

    async def _login(self, creds: dict) -> None:
        saved = await self._guard("Save credentials", self.state.credentials.set_credentials(creds))
        if saved is None:
            return
        if not saved.is_valid:
            self.notify("Credentials saved but incomplete; trading stays locked", severity="warning")
        await self._guard("Login", self.state.dispatcher.login())

    def action_clear_credentials(self) -> None:
        def _on_result(confirmed: bool) -> None:
            if confirmed:
                self.run_worker(self._guard("Clear credentials", self.state.credentials.clear_credentials()))
            else:
                logger.info("[UI] Clear credentials cancelled")

        self.push_screen(ConfirmScreen(CLEAR_WARNING, confirm_label="Delete"), _on_result)

    def _trade_prompt(self, side: str) -> None:
        logger.info("[UI] %s BTC", side.title())

        def _on_result(amount: Optional[str]) -> None:
            if not amount:
                logger.info("[UI] %s cancelled", side.title())
                return
            dispatch = self.state.dispatcher.buy if side == "BUY" else self.state.dispatcher.sell
            self.run_worker(self._guard(f"{side.title()} {amount}", dispatch(amount)))

        self.push_screen(AmountScreen(f"{side.title()} BTC"), _on_result)

    def action_buy(self) -> None:
        self._trade_prompt("BUY")

    def action_sell(self) -> None:
        self._trade_prompt("SELL")

    def action_refresh_data(self) -> None:
        self.run_worker(self._guard("Refresh data", self.state.dispatcher.refresh()))

    def action_retrain(self) -> None:
        self.run_worker(self._guard("Retrain model", self.state.dispatcher.retrain()))

    async def action_autotrade(self) -> None:
        current = await self._guard("Read autotrade settings", self.state.autotrade.get_settings())
        if current is None:
            return

        def _on_result(choice: Optional[dict]) -> None:
            if choice is None:
                return
            if choice["enable"]:
                operation = self.state.autotrade.enable(
                    choice["amount"], choice["side"], choice["delay_hours"]
                )
                self.run_worker(self._guard("Enable autotrading", operation))
            else:
                self.run_worker(self._guard("Disable autotrading", self.state.autotrade.disable()))

        self.push_screen(
            AutotradeScreen(current, self.state.settings.default_trade_delay_hours),
            _on_result,
        )

    def action_help(self) -> None:
        logger.info("[UI] Help menu opened")
        self.push_screen(HelpScreen(VERSION))

    async def action_quit(self) -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        await self.state.shutdown()
        suppress_console_logging(False)
        self.exit()


async def run_dashboard_async(state: AppState) -> None:
    app = BitvisionDashboard(state)
    await app.run_async()


def run_dashboard(state: AppState) -> None:
    """Run the Textual dashboard until the operator quits."""
    app = BitvisionDashboard(state)
    app.run()
