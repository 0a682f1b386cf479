"""Textual application rendering the navigation state machine."""
from __future__ import annotations

from typing import Optional

try:
    from textual import on
    from textual.app import App, ComposeResult
    from textual.binding import Binding
    from textual.containers import VerticalScroll
    from textual.widgets import Footer, Header, Input, Static
except ModuleNotFoundError as exc:  # pragma: no cover - dependency guard
    raise ModuleNotFoundError(
        "The 'textual' package is required to run tubedeck_tui. "
        "Install dependencies with 'pip install -e .[dev]' or 'pip install tubedeck-tui'."
    ) from exc

from rich.markup import escape

from .log_viewer import LogViewer
from .logging_utils import detach_stream_handler, get_log_file_path, get_logger
from .navigation import (
    MENU_ENTRIES,
    Detail,
    ErrorView,
    ListView,
    MainMenu,
    NavigationStateMachine,
    Screen,
    SignIn,
)
from .player import DependencyReport
from .session import SessionState
from .themes import CUSTOM_THEMES, DEFAULT_THEME_NAME

log = get_logger(__name__)

LIST_WINDOW = 40

_SESSION_LABELS = {
    SessionState.UNAUTHENTICATED: "not signed in",
    SessionState.AUTHENTICATING: "signing in",
    SessionState.AUTHENTICATED: "signed in",
    SessionState.REFRESHING: "refreshing session",
}


def _visible_window(count: int, selected: int, size: int = LIST_WINDOW) -> range:
    """Return the slice of rows to draw so that *selected* stays visible."""

    if count <= size:
        return range(count)
    start = max(0, min(selected - size // 2, count - size))
    return range(start, start + size)


def _row(text: str, selected: bool) -> str:
    return f"[reverse]> {text}[/reverse]" if selected else f"  {text}"


def screen_title(screen: Screen) -> str:
    if isinstance(screen, MainMenu):
        return "Main menu"
    if isinstance(screen, ListView):
        return screen.title
    if isinstance(screen, Detail):
        return screen.item.title
    if isinstance(screen, ErrorView):
        return "Error"
    return "Sign in"


def render_screen(screen: Screen) -> str:
    """Return Rich markup for the body of *screen*."""

    if isinstance(screen, MainMenu):
        labels = [
            f"{entry.label}…" if entry.prompt else entry.label for entry in MENU_ENTRIES
        ]
        return "\n".join(
            _row(escape(label), index == screen.selected_index)
            for index, label in enumerate(labels)
        )

    if isinstance(screen, ListView):
        state = screen.state
        lines: list[str] = []
        if state.error:
            lines.append(f"[b red]{escape(state.error)}[/]")
        if state.loading:
            lines.append("[dim]Loading…[/dim]")
        if not state.items and not state.loading and not state.error:
            lines.append("[dim]Nothing here.[/dim]")
        window = _visible_window(len(state.items), state.selected_index)
        if window.start > 0:
            lines.append(f"[dim]  … {window.start} more above[/dim]")
        for index in window:
            item = state.items[index]
            text = escape(item.title)
            if item.channel_title:
                text += f" [dim]· {escape(item.channel_title)}[/dim]"
            lines.append(_row(text, index == state.selected_index))
        remaining = len(state.items) - window.stop
        if remaining > 0:
            lines.append(f"[dim]  … {remaining} more below[/dim]")
        return "\n".join(lines)

    if isinstance(screen, Detail):
        item = screen.item
        lines = [f"[b]{escape(item.title)}[/b]", ""]
        if item.channel_title:
            lines.append(f"Channel:   {escape(item.channel_title)}")
        if item.published_at:
            lines.append(f"Published: {escape(item.published_at)}")
        lines.append(f"ID:        {escape(item.id)}")
        count = item.extra.get("item_count")
        if count is not None:
            lines.append(f"Videos:    {count}")
        if screen.playable:
            lines.append(f"URL:       {escape(item.watch_url)}")
            lines.extend(["", "Press Enter to play."])
        return "\n".join(lines)

    if isinstance(screen, ErrorView):
        return "\n".join(
            [
                f"[b red]{escape(screen.message)}[/]",
                "",
                "Press Enter or Escape to continue.",
            ]
        )

    grant = screen.grant
    if grant is None:
        return "Requesting a sign-in code…"
    lines = [
        "To sign in, visit:",
        "",
        f"  [b]{escape(grant.verification_url)}[/b]",
        "",
        "and enter the code:",
        "",
        f"  [b reverse] {escape(grant.user_code)} [/]",
    ]
    if grant.verification_url_complete:
        lines.extend(["", f"[dim]Or open {escape(grant.verification_url_complete)}[/dim]"])
    lines.extend(["", "Waiting for approval… (Escape to cancel)"])
    return "\n".join(lines)


_INLINE_DEFAULT_CSS = """
#screen-title {
    padding: 0 1;
    text-style: bold;
    color: $primary;
}

#body-scroll {
    height: 1fr;
    border: heavy $surface;
    padding: 0 1;
}

#prompt {
    margin: 0 1;
}

#log-viewer {
    height: 12;
    border: heavy $surface;
    padding: 0 1;
    overflow-y: auto;
}

#status {
    padding: 0 1;
    color: $text-muted;
}
"""


DEFAULT_CSS = _INLINE_DEFAULT_CSS


class TubedeckApp(App[None]):
    """Main Textual application."""

    CSS = DEFAULT_CSS
    CSS_PATH: list[str] = []
    TITLE = "tubedeck"
    AUTO_FOCUS = None
    BINDINGS = [
        Binding("ctrl+c", "nav('q')", "Quit", show=False),
        Binding("q", "nav('q')", "Quit"),
        Binding("up,k", "nav('up')", "Up", show=False),
        Binding("down,j", "nav('down')", "Down", show=False),
        Binding("enter,space", "nav('enter')", "Open"),
        Binding("r", "nav('r')", "Refresh"),
        Binding("escape,backspace,b", "nav('escape')", "Back"),
        Binding("m", "nav('m')", "Menu"),
        Binding("i", "nav('i')", "Details"),
        Binding("slash", "nav('/')", "Search"),
        Binding("f2", "toggle_logs", "Logs"),
    ]

    def _register_custom_themes(self) -> None:
        for theme in CUSTOM_THEMES.values():
            self.register_theme(theme)

    def _apply_requested_theme(self, requested: Optional[str]) -> None:
        preferred = requested or DEFAULT_THEME_NAME
        theme = self.get_theme(preferred)
        if theme is None:
            if requested:
                log.warning(
                    "Requested theme '%s' is unavailable; falling back to %s",
                    requested,
                    DEFAULT_THEME_NAME,
                )
            fallback = self.get_theme(DEFAULT_THEME_NAME)
            if fallback is not None:
                self.theme = fallback.name
            return
        log.debug("Applying theme %s", theme.name)
        self.theme = theme.name

    def __init__(
        self,
        machine: NavigationStateMachine,
        *,
        theme: Optional[str] = None,
        dependencies: Optional[DependencyReport] = None,
    ) -> None:
        super().__init__()
        self._register_custom_themes()
        self._apply_requested_theme(theme)
        self.machine = machine
        self._dependencies = dependencies
        self._view_ready = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="screen-title")
        with VerticalScroll(id="body-scroll"):
            yield Static("", id="body")
        yield Input(id="prompt")
        yield LogViewer(id="log-viewer")
        yield Static("", id="status")
        yield Footer()

    def on_mount(self) -> None:
        log.debug("Application mounted")
        detach_stream_handler()
        self.query_one("#body-scroll", VerticalScroll).can_focus = False
        self.query_one("#prompt", Input).display = False
        self.query_one(LogViewer).display = False
        self.machine.set_listener(self.refresh_view)
        self._view_ready = True
        if self.machine.session.state is SessionState.UNAUTHENTICATED:
            self.machine.status = "Not signed in; open any list to start sign-in"
        report = self._dependencies
        if report is not None and not report.ok:
            self.machine.status = "Missing: " + ", ".join(report.missing)
        log_path = get_log_file_path()
        if log_path is not None:
            log.info("Logging to %s", log_path)
        self.refresh_view()

    def on_unmount(self) -> None:
        self._view_ready = False
        self.machine.set_listener(None)
        if not self.machine.quit_requested:
            self.machine.quit()

    def refresh_view(self) -> None:
        """Redraw title, body, prompt and status from the state machine."""

        if not self._view_ready:
            return
        machine = self.machine
        screen = machine.current
        self.sub_title = _SESSION_LABELS[machine.session.state]
        self.query_one("#screen-title", Static).update(escape(screen_title(screen)))
        self.query_one("#body", Static).update(render_screen(screen))
        self.query_one("#status", Static).update(escape(machine.status))
        prompt = self.query_one("#prompt", Input)
        if machine.prompt is not None and not prompt.display:
            prompt.placeholder = machine.prompt.prompt or ""
            prompt.value = ""
            prompt.display = True
            prompt.focus()
        elif machine.prompt is None and prompt.display:
            prompt.value = ""
            prompt.display = False
            self.set_focus(None)

    def action_nav(self, key: str) -> None:
        handled = self.machine.handle_key(key)
        if not handled:
            return
        if self.machine.quit_requested:
            log.info("Exiting application")
            self.exit()
            return
        self.refresh_view()

    def action_toggle_logs(self) -> None:
        viewer = self.query_one(LogViewer)
        viewer.display = not viewer.display

    @on(Input.Submitted, "#prompt")
    def _prompt_submitted(self, event: Input.Submitted) -> None:
        self.machine.submit_prompt(event.value)
        self.refresh_view()


__all__ = ["TubedeckApp", "render_screen", "screen_title"]
