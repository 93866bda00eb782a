"""Modal screens: login, amount entry, autotrade settings, confirmation, help."""

from typing import Optional

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Static

from core.models import AutotradeSettings

MODAL_CSS = """
ModalScreen {
    align: center middle;
}

.dialog {
    width: 60;
    height: auto;
    border: thick $accent;
    background: $surface;
    padding: 1 2;
}

.dialog Input {
    margin-bottom: 1;
}

.buttons {
    height: auto;
    align: center middle;
}

.buttons Button {
    margin: 0 1;
}
"""


class LoginScreen(ModalScreen[Optional[dict]]):
    """Collects key, secret and passphrase. Dismisses with None on cancel."""

    DEFAULT_CSS = MODAL_CSS
    BINDINGS = [("escape", "cancel", "Cancel")]

    def compose(self) -> ComposeResult:
        yield Vertical(
            Label("[bold]Exchange Login[/]"),
            Input(placeholder="API key", id="key"),
            Input(placeholder="API secret", password=True, id="secret"),
            Input(placeholder="Passphrase", password=True, id="passphrase"),
            Horizontal(
                Button("Save", variant="primary", id="save"),
                Button("Cancel", id="cancel"),
                classes="buttons",
            ),
            classes="dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id != "save":
            self.dismiss(None)
            return
        self.dismiss({
            name: self.query_one(f"#{name}", Input).value.strip()
            for name in ("key", "secret", "passphrase")
        })

    def action_cancel(self) -> None:
        self.dismiss(None)


class AmountScreen(ModalScreen[Optional[str]]):
    """Single amount prompt used by buy and sell."""

    DEFAULT_CSS = MODAL_CSS
    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, title: str):
        super().__init__()
        self.title_text = title

    def compose(self) -> ComposeResult:
        yield Vertical(
            Label(f"[bold]{self.title_text}[/]"),
            Input(placeholder="Amount (BTC)", id="amount"),
            Horizontal(
                Button("OK", variant="primary", id="ok"),
                Button("Cancel", id="cancel"),
                classes="buttons",
            ),
            classes="dialog",
        )

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value.strip())

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "ok":
            self.dismiss(self.query_one("#amount", Input).value.strip())
        else:
            self.dismiss(None)

    def action_cancel(self) -> None:
        self.dismiss(None)


class AutotradeScreen(ModalScreen[Optional[dict]]):
    """
    Enable or disable autotrading.

    Dismisses with {"enable": False} or
    {"enable": True, "amount": str, "side": str, "delay_hours": str}.
    """

    DEFAULT_CSS = MODAL_CSS
    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, current: AutotradeSettings, default_delay_hours: float):
        super().__init__()
        self.current = current
        self.default_delay_hours = default_delay_hours

    def compose(self) -> ComposeResult:
        if self.current.enabled:
            status = (
                f"[green]ENABLED[/]: {self.current.next_trade_side.value} "
                f"{self.current.next_trade_amount} at {self.current.next_trade_timestamp_utc}"
            )
        else:
            status = "[yellow]DISABLED[/]"
        yield Vertical(
            Label("[bold]Autotrading Settings[/]"),
            Static(f"Currently {status}"),
            Input(placeholder="Amount (BTC)", id="amount"),
            Input(placeholder="Side (BUY or SELL)", value="BUY", id="side"),
            Input(placeholder="Delay (hours)", value=f"{self.default_delay_hours:g}", id="delay"),
            Horizontal(
                Button("Enable", variant="success", id="enable"),
                Button("Disable", variant="error", id="disable"),
                Button("Cancel", id="cancel"),
                classes="buttons",
            ),
            classes="dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "enable":
            self.dismiss({
                "enable": True,
                "amount": self.query_one("#amount", Input).value.strip(),
                "side": self.query_one("#side", Input).value.strip(),
                "delay_hours": self.query_one("#delay", Input).value.strip(),
            })
        elif event.button.id == "disable":
            self.dismiss({"enable": False})
        else:
            self.dismiss(None)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ConfirmScreen(ModalScreen[bool]):
    DEFAULT_CSS = MODAL_CSS
    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, message: str, confirm_label: str = "Yes"):
        super().__init__()
        self.message = message
        self.confirm_label = confirm_label

    def compose(self) -> ComposeResult:
        yield Vertical(
            Static(self.message),
            Horizontal(
                Button(self.confirm_label, variant="error", id="yes"),
                Button("Cancel", id="no"),
                classes="buttons",
            ),
            classes="dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "yes")

    def action_cancel(self) -> None:
        self.dismiss(False)


HELP_TEXT = """\
[bold]Keys[/]
  t  Autotrading settings
  r  Refresh data
  l  Exchange login
  c  Clear credentials
  b  Buy BTC
  s  Sell BTC
  m  Retrain model
  h  Show this help
  q  Quit
"""


class HelpScreen(ModalScreen[None]):
    DEFAULT_CSS = MODAL_CSS
    BINDINGS = [("escape", "close", "Close")]

    def __init__(self, version: str):
        super().__init__()
        self.version = version

    def compose(self) -> ComposeResult:
        yield Vertical(
            Label(f"[bold]Bitvision {self.version}[/]"),
            Static(HELP_TEXT),
            Horizontal(Button("Close", variant="primary", id="close"), classes="buttons"),
            classes="dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(None)

    def action_close(self) -> None:
        self.dismiss(None)
