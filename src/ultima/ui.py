"""
Ultima - Textual-based terminal user interface.

A thin presentation layer over SessionOrchestrator: every action here is
a call into the orchestrator, and every display refreshes from its state.
"""

import logging
from pathlib import Path
from typing import Optional

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    Footer,
    Header,
    Input,
    Label,
    ProgressBar,
    RadioButton,
    RadioSet,
    Static,
    Switch,
    TextArea,
)

from .connection_fsm import ConnectionState
from .crypto import CryptoConfig, EncLevel
from .errors import DecryptionFailed, UltimaError
from .message import Message, MessageKind
from .session import SessionOrchestrator, TransferProgress
from .utils import format_size, format_timestamp

logger = logging.getLogger(__name__)

FILE_COMMAND = "/file "

LEVEL_BUTTONS = {
    "level-standard": EncLevel.STANDARD,
    "level-personal": EncLevel.PERSONAL,
    "level-open": EncLevel.OPEN,
}


class HoldToCloseButton(Static):
    """Close button: hold to wipe, release early to confirm."""

    def __init__(self, orchestrator: SessionOrchestrator, **kwargs):
        super().__init__("[b] X [/b]", **kwargs)
        self.orchestrator = orchestrator

    def on_mouse_down(self, event: events.MouseDown) -> None:
        if self.orchestrator.state != ConnectionState.IDLE:
            # Keep receiving the release even if the pointer leaves the button
            self.capture_mouse()
            self.orchestrator.close_control.press()

    def on_mouse_up(self, event: events.MouseUp) -> None:
        self.release_mouse()
        self.orchestrator.close_control.release()


class ConfirmEndScreen(ModalScreen):
    """Countdown confirmation shown after an early release of the close button."""

    def __init__(self, orchestrator: SessionOrchestrator, strings: dict):
        super().__init__()
        self.orchestrator = orchestrator
        self.strings = strings

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm-dialog"):
            yield Label(f"[b]{self.strings['confirm_title']}[/b]")
            yield Label("", id="confirm-desc")
            with Horizontal():
                yield Button(self.strings["yes"], variant="error", id="confirm-yes")
                yield Button(self.strings["no"], variant="primary", id="confirm-no")

    def on_mount(self) -> None:
        self.refresh_countdown()

    def refresh_countdown(self) -> None:
        remaining = self.orchestrator.close_control.countdown_remaining
        self.query_one("#confirm-desc", Label).update(
            self.strings["confirm_desc"].format(time=remaining)
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "confirm-yes":
            self.orchestrator.close_control.confirm()
        else:
            self.orchestrator.close_control.cancel()


class UltimaApp(App):
    """Ultima terminal application."""

    CSS = """
    #setup, #signaling, #chat { padding: 1 2; }
    #chat-log { height: 1fr; border: round $primary; }
    #code-view, #code-input { height: 6; }
    #typing-line, #progress-line { height: 1; color: $text-muted; }
    #close-button { width: 5; content-align: center middle; background: $error; }
    #status { height: auto; border: round $secondary; padding: 0 1; }
    #confirm-dialog { width: 40; height: auto; padding: 1 2; border: thick $error; background: $surface; }
    .sent { color: $success; }
    .received { color: $text; }
    .system { color: $warning; text-style: italic; }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("ctrl+s", "toggle_status", "Security info"),
    ]

    def __init__(self, orchestrator: SessionOrchestrator, strings: dict, theme_name: str = "dark"):
        super().__init__()
        self.orchestrator = orchestrator
        self.strings = strings
        self.theme_name = theme_name
        self._confirm_screen: Optional[ConfirmEndScreen] = None

    def compose(self) -> ComposeResult:
        s = self.strings
        yield Header()
        with Horizontal(id="topbar"):
            yield Label(f"[b]{s['title']}[/b]  {s['subtitle']}", id="title")
            yield ProgressBar(total=100, show_eta=False, show_percentage=False, id="close-progress")
            yield HoldToCloseButton(self.orchestrator, id="close-button")

        with Vertical(id="setup"):
            yield Label(s["setup_title"])
            yield Label(s["enc_level_label"])
            with RadioSet(id="level"):
                yield RadioButton(s["enc_standard"], value=True, id="level-standard")
                yield RadioButton(s["enc_personal"], id="level-personal")
                yield RadioButton(s["enc_open"], id="level-open")
            yield Input(placeholder=s["pass_placeholder"], password=True, id="passphrase")
            with Horizontal():
                yield Switch(value=self.orchestrator.crypto_config.use_mic, id="mic")
                yield Label(f"{s['voice_toggle']} - {s['voice_hint']}")
            with Horizontal():
                yield Button(s["host"], variant="primary", id="host")
                yield Button(s["join"], variant="default", id="join")
            yield Label(s["tech_note"])

        with Vertical(id="signaling"):
            yield Label("", id="stage")
            yield TextArea("", read_only=True, id="code-view")
            yield Button(s["copy"], id="copy")
            yield TextArea("", id="code-input")
            yield Button(s["stage_process"], variant="success", id="process")

        with Vertical(id="chat"):
            yield VerticalScroll(id="chat-log")
            yield Label("", id="typing-line")
            yield Label("", id="progress-line")
            yield Input(placeholder=s["placeholder"], id="message-input")

        yield Static("", id="status")
        yield Footer()

    def on_mount(self) -> None:
        self.theme = "textual-light" if self.theme_name == "light" else "textual-dark"
        orchestrator = self.orchestrator
        orchestrator.messages.on_change = self.refresh_messages
        orchestrator.state_machine.on_state_change = lambda old, new: self.refresh_panels()
        orchestrator.on_typing_change = self.refresh_typing
        orchestrator.on_progress = self.refresh_progress
        orchestrator.on_local_code = self.show_local_code
        orchestrator.on_error = lambda e: self.notify(e.message, severity="warning")
        orchestrator.close_control.on_update = self.refresh_close
        self.query_one("#status").display = False
        self.refresh_panels()

    # ------------------------------------------------------------------
    # Display refresh

    def refresh_panels(self) -> None:
        state = self.orchestrator.state
        s = self.strings
        idle = state in (ConnectionState.IDLE, ConnectionState.FAILED)
        connected = state in (ConnectionState.CONNECTED, ConnectionState.DISCONNECTED)

        self.query_one("#setup").display = idle
        self.query_one("#signaling").display = not idle and not connected
        self.query_one("#chat").display = connected or len(self.orchestrator.messages) > 0

        stage = self.query_one("#stage", Label)
        code_input = self.query_one("#code-input", TextArea)
        code_input.display = True
        if state == ConnectionState.GENERATING:
            stage.update(s["stage_gen"])
            code_input.display = False
        elif state == ConnectionState.OFFERING:
            stage.update(f"{s['stage_send_back']}  /  {s['stage_reply']}")
        elif state == ConnectionState.ANSWERING:
            if self.orchestrator.local_code:
                stage.update(s["stage_your_reply"])
                code_input.display = False
            else:
                stage.update(s["stage_paste"])

        self.refresh_status()

    def refresh_status(self) -> None:
        s = self.strings
        config = self.orchestrator.crypto_config
        state = self.orchestrator.state
        audio = s["active"] if config.use_mic and state == ConnectionState.CONNECTED else s["inactive"]
        ice = s["connected"] if state == ConnectionState.CONNECTED else s["waiting"]
        self.query_one("#status", Static).update(
            f"{s['status']}: {state.value}\n"
            f"{s['protocol']}: WebRTC (DTLS/SCTP)\n"
            f"{s['cipher']}: {config.describe()}\n"
            f"{s['ice']}: {ice}\n"
            f"{s['audio']}: {audio}"
        )

    def _render_message(self, message: Message) -> Static:
        time_str = format_timestamp(message.timestamp)
        text = message.content
        if message.file is not None:
            text = f"[{message.file.name} - {format_size(message.file.size)}] {message.file.locator}"
        if message.kind == MessageKind.SYSTEM:
            return Static(Text(f"-- {text} --"), classes="system")
        prefix = ">" if message.kind == MessageKind.SENT else "<"
        # Peer text is untrusted, never parse it as markup
        line = Text.assemble((time_str, "dim"), f" {prefix} ", text)
        return Static(line, classes=message.kind.value)

    def refresh_messages(self) -> None:
        log = self.query_one("#chat-log", VerticalScroll)
        log.remove_children()
        log.mount_all([self._render_message(m) for m in self.orchestrator.messages])
        log.scroll_end(animate=False)
        self.refresh_panels()

    def refresh_typing(self, typing: bool) -> None:
        text = f"... {self.strings['typing']}" if typing else ""
        self.query_one("#typing-line", Label).update(text)

    def refresh_progress(self, progress: Optional[TransferProgress]) -> None:
        text = f"{progress.name}: {progress.percent}%" if progress else ""
        self.query_one("#progress-line", Label).update(text)

    def show_local_code(self, code: str) -> None:
        self.query_one("#code-view", TextArea).load_text(code)
        self.refresh_panels()

    def refresh_close(self) -> None:
        control = self.orchestrator.close_control
        self.query_one("#close-progress", ProgressBar).update(progress=control.progress)

        if control.awaiting_confirmation:
            if self._confirm_screen is None:
                self._confirm_screen = ConfirmEndScreen(self.orchestrator, self.strings)
                self.push_screen(self._confirm_screen)
            else:
                self._confirm_screen.refresh_countdown()
        elif self._confirm_screen is not None:
            self._confirm_screen.dismiss()
            self._confirm_screen = None

    # ------------------------------------------------------------------
    # Actions

    def _selected_config(self) -> CryptoConfig:
        pressed = self.query_one("#level", RadioSet).pressed_button
        level = LEVEL_BUTTONS.get(pressed.id if pressed else "", EncLevel.STANDARD)
        passphrase = self.query_one("#passphrase", Input).value or None
        use_mic = self.query_one("#mic", Switch).value
        return CryptoConfig(enc_level=level, passphrase=passphrase, use_mic=use_mic)

    async def _host(self) -> None:
        await self.orchestrator.start_hosting()
        self.refresh_panels()

    async def _join(self) -> None:
        await self.orchestrator.start_joining()
        self.refresh_panels()

    async def _process(self, text: str) -> None:
        try:
            await self.orchestrator.submit_remote_text(text)
        except DecryptionFailed:
            self.notify(self.strings["bad_code"], severity="error")
            return
        except UltimaError as e:
            self.notify(e.message, severity="error")
            return
        self.query_one("#code-input", TextArea).load_text("")
        self.refresh_panels()

    async def _send_file(self, path: str) -> None:
        try:
            await self.orchestrator.send_file(Path(path).expanduser())
        except UltimaError as e:
            self.notify(e.message, severity="error")

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id in ("host", "join"):
            try:
                self.orchestrator.set_crypto_config(self._selected_config())
            except UltimaError as e:
                self.notify(e.message, severity="error")
                return
            action = self._host if button_id == "host" else self._join
            self.run_worker(action(), exclusive=True, group="signaling")
        elif button_id == "process":
            text = self.query_one("#code-input", TextArea).text
            if text.strip():
                self.run_worker(self._process(text), exclusive=True, group="signaling")
        elif button_id == "copy":
            self.copy_to_clipboard(self.orchestrator.local_code)

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "message-input" and event.value:
            self.orchestrator.notify_local_typing()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "message-input":
            return
        value = event.value
        event.input.value = ""
        if value.startswith(FILE_COMMAND):
            self.run_worker(self._send_file(value[len(FILE_COMMAND) :].strip()), group="files")
        else:
            self.orchestrator.send_text(value)

    def action_toggle_status(self) -> None:
        status = self.query_one("#status")
        status.display = not status.display
        self.refresh_status()

    async def action_quit(self) -> None:
        await self.orchestrator.close_session(wipe_history=True)
        self.exit()
