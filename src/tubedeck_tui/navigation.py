"""Screen model and the key-driven navigation state machine.

The machine owns exactly one current screen plus a back-stack. Key handling
never awaits network I/O: fetches, sign-in and playback run as asyncio tasks
that update the screens when they finish and notify the UI through
``on_change``.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Optional, Union

from .errors import ProviderError, SpawnError, TubedeckError
from .fetch import FetchCoordinator, FetchResult, ListState
from .history import HistoryLog
from .logging_utils import get_logger
from .oauth import DeviceGrantState
from .player import PlaybackDispatcher
from .session import SessionManager, SessionState
from .youtube import PLAYABLE_KINDS, ListItem, ListKind

log = get_logger(__name__)


@dataclass(eq=False)
class MainMenu:
    selected_index: int = 0


@dataclass(eq=False)
class ListView:
    kind: ListKind
    title: str
    state: ListState = field(default_factory=ListState)
    argument: Any = None

    @property
    def playable(self) -> bool:
        return self.kind in PLAYABLE_KINDS


@dataclass(eq=False)
class Detail:
    item: ListItem
    playable: bool


@dataclass(eq=False)
class ErrorView:
    message: str
    return_screen: "Screen"


@dataclass(eq=False)
class SignIn:
    """Shown while a device authorization attempt is in progress."""

    return_screen: "Screen"
    grant: Optional[DeviceGrantState] = None


Screen = Union[MainMenu, ListView, Detail, ErrorView, SignIn]


@dataclass(frozen=True)
class MenuEntry:
    label: str
    kind: ListKind
    prompt: Optional[str] = None


MENU_ENTRIES: tuple[MenuEntry, ...] = (
    MenuEntry("Subscriptions", ListKind.SUBSCRIPTIONS),
    MenuEntry("Playlists", ListKind.PLAYLISTS),
    MenuEntry("Search", ListKind.SEARCH, prompt="Search videos"),
    MenuEntry("History", ListKind.HISTORY),
    MenuEntry("Trending", ListKind.TRENDING),
    MenuEntry("Open channel URL", ListKind.CHANNEL_URL, prompt="Channel URL or @handle"),
)

# Opening an item of these kinds drills down instead of playing.
_DRILL_DOWN = {
    ListKind.SUBSCRIPTIONS: ListKind.CHANNEL_VIDEOS,
    ListKind.PLAYLISTS: ListKind.PLAYLIST_ITEMS,
}

KEY_COMMANDS: dict[str, str] = {
    "up": "cursor_up",
    "k": "cursor_up",
    "down": "cursor_down",
    "j": "cursor_down",
    "enter": "activate",
    "space": "activate",
    "r": "refresh",
    "escape": "back",
    "backspace": "back",
    "b": "back",
    "m": "to_menu",
    "i": "show_details",
    "/": "open_search",
    "slash": "open_search",
    "q": "quit",
}


class NavigationStateMachine:
    """Interpret key events and coordinate fetches, sign-in and playback."""

    def __init__(
        self,
        session: SessionManager,
        coordinator: FetchCoordinator,
        dispatcher: PlaybackDispatcher,
        history: HistoryLog,
        *,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._session = session
        self._coordinator = coordinator
        self._dispatcher = dispatcher
        self._history = history
        self._on_change = on_change
        self._menu = MainMenu()
        self._current: Screen = self._menu
        self._stack: list[Screen] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._sign_in_task: Optional[asyncio.Task[None]] = None
        self.prompt: Optional[MenuEntry] = None
        self.status = ""
        self.quit_requested = False

    @property
    def current(self) -> Screen:
        return self._current

    @property
    def stack(self) -> tuple[Screen, ...]:
        return tuple(self._stack)

    @property
    def session(self) -> SessionManager:
        return self._session

    def set_listener(self, callback: Optional[Callable[[], None]]) -> None:
        self._on_change = callback

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    # Key handling -------------------------------------------------------

    def handle_key(self, key: str) -> bool:
        """Apply the command bound to *key*; return whether it was handled."""

        if self.quit_requested:
            return False
        # While the prompt is open only escape reaches the machine.
        if self.prompt is not None and key != "escape":
            return False
        command = KEY_COMMANDS.get(key)
        if command is None:
            return False
        getattr(self, command)()
        self._notify()
        return True

    def cursor_up(self) -> None:
        self.move(-1)

    def cursor_down(self) -> None:
        self.move(1)

    def move(self, delta: int) -> None:
        screen = self._current
        if isinstance(screen, MainMenu):
            screen.selected_index = max(
                0, min(len(MENU_ENTRIES) - 1, screen.selected_index + delta)
            )
        elif isinstance(screen, ListView):
            screen.state.move(delta)

    def activate(self) -> None:
        screen = self._current
        if isinstance(screen, MainMenu):
            self._open_menu_entry(MENU_ENTRIES[screen.selected_index])
        elif isinstance(screen, ListView):
            item = screen.state.selected_item
            if item is None:
                self.status = "Nothing selected"
                return
            drill_kind = _DRILL_DOWN.get(screen.kind)
            if drill_kind is not None:
                self.open_list(drill_kind, item.title, argument=item.id)
            elif screen.playable:
                self.play(item)
        elif isinstance(screen, Detail):
            if screen.playable:
                self.play(screen.item)
        elif isinstance(screen, ErrorView):
            self.acknowledge()

    def _open_menu_entry(self, entry: MenuEntry) -> None:
        if entry.prompt is not None:
            self.prompt = entry
            return
        self.open_list(entry.kind, entry.label)

    def open_search(self) -> None:
        if isinstance(self._current, (ErrorView, SignIn)):
            return
        self.prompt = next(entry for entry in MENU_ENTRIES if entry.kind is ListKind.SEARCH)

    def submit_prompt(self, text: str) -> None:
        entry = self.prompt
        self.prompt = None
        value = text.strip()
        if entry is None or not value:
            self._notify()
            return
        title = f"Search: {value}" if entry.kind is ListKind.SEARCH else value
        self.open_list(entry.kind, title, argument=value)
        self._notify()

    def cancel_prompt(self) -> None:
        self.prompt = None

    def show_details(self) -> None:
        screen = self._current
        if not isinstance(screen, ListView):
            return
        item = screen.state.selected_item
        if item is None:
            return
        self._push(Detail(item=item, playable=screen.playable))

    def refresh(self) -> None:
        screen = self._current
        if not isinstance(screen, ListView):
            self.status = "Nothing to refresh here"
            return
        if screen.kind is ListKind.HISTORY:
            screen.argument = tuple(self._history.list())
        self.status = f"Refreshing {screen.title}…"
        self._request_fetch(screen)

    def back(self) -> None:
        if self.prompt is not None:
            self.cancel_prompt()
            return
        screen = self._current
        if isinstance(screen, ErrorView):
            self.acknowledge()
            return
        if isinstance(screen, SignIn):
            self._cancel_sign_in()
            self._current = screen.return_screen
            if isinstance(self._current, ListView):
                self._current.state.loading = False
                self._current.state.error = "Sign-in cancelled"
            return
        if not self._stack:
            return
        self._discard(screen)
        self._current = self._stack.pop()

    def to_menu(self) -> None:
        self.prompt = None
        if isinstance(self._current, SignIn):
            self._cancel_sign_in()
        self._discard(self._current)
        for screen in self._stack:
            self._discard(screen)
        self._stack.clear()
        self._current = self._menu

    def acknowledge(self) -> None:
        screen = self._current
        if isinstance(screen, ErrorView):
            self._current = screen.return_screen

    def quit(self) -> None:
        log.info("Quit requested")
        self.quit_requested = True
        self.prompt = None
        self._cancel_sign_in()
        self._session.close()
        for task in list(self._tasks):
            task.cancel()

    # Screen transitions -------------------------------------------------

    def _push(self, screen: Screen) -> None:
        self._stack.append(self._current)
        self._current = screen

    def _discard(self, screen: Screen) -> None:
        # Results for a popped list are dropped when they arrive.
        target = screen.return_screen if isinstance(screen, (ErrorView, SignIn)) else screen
        if isinstance(target, ListView) and target.state.loading:
            target.state.fetch_token += 1
            target.state.loading = False

    def open_list(self, kind: ListKind, title: str, *, argument: Any = None) -> ListView:
        if kind is ListKind.HISTORY:
            argument = tuple(self._history.list())
        screen = ListView(kind=kind, title=title, argument=argument)
        self._push(screen)
        self.status = ""
        self._request_fetch(screen)
        return screen

    def _request_fetch(self, screen: ListView) -> None:
        if self._session.state in (SessionState.UNAUTHENTICATED, SessionState.AUTHENTICATING):
            self._start_sign_in(screen)
            return
        generation = self._coordinator.start(screen.state)
        self._spawn(self._run_fetch(screen, generation), name=f"fetch:{screen.kind.value}")

    async def _fetch_with_token(self, screen: ListView, generation: int) -> FetchResult:
        try:
            token = await self._session.get_valid_token()
        except TubedeckError as exc:
            return self._coordinator.fail(screen.state, generation, exc)
        return await self._coordinator.fetch(
            screen.state, screen.kind, screen.argument, token, generation
        )

    async def _run_fetch(self, screen: ListView, generation: int) -> None:
        result = await self._fetch_with_token(screen, generation)
        error = result.error
        if result.applied and isinstance(error, ProviderError) and error.status == 401:
            # Revoked before its expiry: refresh once and retry.
            self._session.invalidate()
            generation = self._coordinator.start(screen.state)
            result = await self._fetch_with_token(screen, generation)
        if result.applied and result.error is not None and self._current is screen:
            self._current = ErrorView(message=result.error.message, return_screen=screen)
        if result.applied and result.error is None and self._current is screen:
            self.status = f"Loaded {len(screen.state.items)} item(s)"
        self._notify()

    # Sign-in ------------------------------------------------------------

    def _start_sign_in(self, return_screen: ListView) -> None:
        if isinstance(self._current, SignIn) and self._sign_in_task is not None:
            return
        screen = SignIn(return_screen=return_screen)
        return_screen.state.loading = True
        self._current = screen
        self.status = "Requesting a sign-in code…"
        self._sign_in_task = self._spawn(self._run_sign_in(screen), name="sign-in")

    def _cancel_sign_in(self) -> None:
        task = self._sign_in_task
        self._sign_in_task = None
        if task is not None and not task.done():
            log.info("Cancelling device sign-in")
            task.cancel()
        if isinstance(self._current, SignIn):
            self._current.grant = None

    async def _run_sign_in(self, screen: SignIn) -> None:
        def on_grant(grant: DeviceGrantState) -> None:
            screen.grant = grant
            self.status = "Waiting for approval…"
            self._notify()

        try:
            await self._session.authenticate(on_grant)
        except TubedeckError as exc:
            log.warning("Sign-in failed: %s", exc.message)
            screen.grant = None
            if self._sign_in_task is asyncio.current_task():
                self._sign_in_task = None
            target = screen.return_screen
            if isinstance(target, ListView):
                target.state.loading = False
                target.state.error = exc.message
            if self._current is screen:
                self._current = ErrorView(message=exc.message, return_screen=target)
            self.status = ""
            self._notify()
            return
        screen.grant = None
        if self._sign_in_task is asyncio.current_task():
            self._sign_in_task = None
        self.status = "Signed in"
        if self._current is screen:
            self._current = screen.return_screen
            if isinstance(self._current, ListView):
                self._request_fetch(self._current)
        self._notify()

    # Playback -----------------------------------------------------------

    def play(self, item: ListItem) -> None:
        self.status = f"Launching {item.title}…"
        self._spawn(self._run_play(item), name=f"play:{item.id}")

    async def _run_play(self, item: ListItem) -> None:
        try:
            await self._dispatcher.play(item.id)
        except SpawnError as exc:
            self.status = f"Playback failed: {exc.message}"
        else:
            self.status = f"Playing: {item.title}"
        self._notify()

    # Tasks --------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        log.error("Background task %s failed", task.get_name(), exc_info=exc)
        if self.quit_requested:
            return
        current = self._current
        if isinstance(current, ErrorView):
            current = current.return_screen
        elif isinstance(current, SignIn):
            self._sign_in_task = None
            current = current.return_screen
        self._current = ErrorView(message=f"Unexpected error: {exc}", return_screen=current)
        self._notify()

    async def wait_idle(self) -> None:
        """Wait until every background task has finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = [
    "Detail",
    "ErrorView",
    "KEY_COMMANDS",
    "ListView",
    "MENU_ENTRIES",
    "MainMenu",
    "MenuEntry",
    "NavigationStateMachine",
    "Screen",
    "SignIn",
]
