"""
Interactive selector
Terminal prompt to pick one or several candidates from a list
"""

import inspect
from typing import Awaitable, List, Optional, Sequence, Set, Union

from prompt_toolkit.application import Application
from prompt_toolkit.filters import Condition
from prompt_toolkit.formatted_text import StyleAndTextTuples
from prompt_toolkit.input import Input
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.key_binding.key_processor import KeyPress
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.output import Output
from prompt_toolkit.styles import Style

from ..core.errors import Cancelled
from ..core.models import Candidate
from .logger import get_logger

logger = get_logger("selector")

CANCEL_KEYS = ("escape", "c-c", "c-d", "q")

STYLE = Style.from_dict({
    "title": "bold",
    "status": "#888888",
    "pointer": "bold ansicyan",
    "current": "bold ansicyan",
    "hint": "#888888",
})

Candidates = Union[Sequence[Candidate], Awaitable[Sequence[Candidate]]]


class SelectionState:
    """Cursor, scroll window and toggled rows of one prompt"""

    def __init__(self, candidates: Sequence[Candidate], multiple: bool, height: int = 15):
        self.candidates = list(candidates)
        self.multiple = multiple
        self.height = max(1, height)
        self.cursor = 0
        self.offset = 0
        self.selected: Set[int] = set()

    def move(self, delta: int) -> None:
        if not self.candidates:
            return
        self.cursor = max(0, min(len(self.candidates) - 1, self.cursor + delta))
        if self.cursor < self.offset:
            self.offset = self.cursor
        elif self.cursor >= self.offset + self.height:
            self.offset = self.cursor - self.height + 1

    def toggle(self) -> None:
        if not self.multiple or not self.candidates:
            return
        self.selected ^= {self.cursor}

    def toggle_and_advance(self) -> None:
        self.toggle()
        self.move(1)

    def toggle_all(self) -> None:
        if not self.multiple:
            return
        everything = set(range(len(self.candidates)))
        self.selected = set() if self.selected == everything else everything

    def result(self) -> List[Candidate]:
        """Toggled rows in list order, or the row under the cursor if none"""
        if self.multiple and self.selected:
            return [c for i, c in enumerate(self.candidates) if i in self.selected]
        return [self.candidates[self.cursor]]

    @property
    def status(self) -> str:
        if self.multiple:
            return f"{len(self.selected)}/{len(self.candidates)} selected"
        return f"{len(self.candidates)} items"


class _Prompt:
    """State shared between the key bindings and the renderer of one run"""

    def __init__(self, multiple: bool):
        self.multiple = multiple
        self.state: Optional[SelectionState] = None
        # Keys typed while candidates load, replayed once they arrive
        self.pending: List[KeyPress] = []


# (keys, action) pairs active once candidates are loaded
ACTIONS = [
    (("up", "k"), lambda s: s.move(-1)),
    (("down", "j", "tab"), lambda s: s.move(1)),
    (("pageup",), lambda s: s.move(-s.height)),
    (("pagedown",), lambda s: s.move(s.height)),
    (("home", "g"), lambda s: s.move(-len(s.candidates))),
    (("end", "G"), lambda s: s.move(len(s.candidates))),
    (("space",), SelectionState.toggle_and_advance),
    (("a",), SelectionState.toggle_all),
]


class Selector:
    """Pick candidates on the terminal with a prompt_toolkit application.

    The application holds the terminal in raw mode only while the prompt is
    shown and restores it on every way out, including cancellation and
    errors. Nothing else should write to the terminal while a selection is
    running. ``input``/``output`` default to the controlling terminal.
    """

    def __init__(self, title: str = "Select", height: Optional[int] = None,
                 input: Optional[Input] = None, output: Optional[Output] = None):
        self.title = title
        self.height = height
        self.input = input
        self.output = output

    def _render(self, prompt: _Prompt) -> StyleAndTextTuples:
        fragments: StyleAndTextTuples = [("class:title", self.title)]
        state = prompt.state
        if state is None:
            fragments.append(("class:hint", "\nloading... (esc to cancel)"))
            return fragments

        fragments.append(("class:status", f"  {state.status}\n"))
        window = state.candidates[state.offset:state.offset + state.height]
        for i, candidate in enumerate(window, start=state.offset):
            current = i == state.cursor
            fragments.append(("class:pointer", "❯ " if current else "  "))
            if state.multiple:
                fragments.append(("", "[x] " if i in state.selected else "[ ] "))
            fragments.append(("class:current" if current else "", candidate.label))
            fragments.append(("", "\n"))

        if state.multiple:
            hint = "↑/↓ move  space toggle  a all  enter confirm  esc cancel"
        else:
            hint = "↑/↓ move  enter select  esc cancel"
        fragments.append(("class:hint", hint))
        return fragments

    def _bindings(self, prompt: _Prompt) -> KeyBindings:
        kb = KeyBindings()
        ready = Condition(lambda: prompt.state is not None)

        @kb.add(Keys.Any, filter=~ready)
        def _defer(event):
            prompt.pending.extend(event.key_sequence)

        def cancel(event):
            event.app.exit(exception=Cancelled("selection cancelled"))

        for key in CANCEL_KEYS:
            kb.add(key)(cancel)

        for keys, action in ACTIONS:
            for key in keys:
                kb.add(key, filter=ready)(lambda event, action=action: action(prompt.state))

        @kb.add("enter", filter=ready)
        def _confirm(event):
            event.app.exit(result=prompt.state.result())

        return kb

    async def select(self, candidates: Candidates, multiple: bool = False) -> List[Candidate]:
        """Return the chosen candidates in list order; raise Cancelled on abort"""
        prompt = _Prompt(multiple)
        loading = inspect.isawaitable(candidates)
        if not loading:
            candidates = list(candidates)
            if not candidates:
                return []

        app: Application = Application(
            layout=Layout(Window(
                FormattedTextControl(lambda: self._render(prompt), focusable=True, show_cursor=False),
                dont_extend_height=True,
            )),
            key_bindings=self._bindings(prompt),
            style=STYLE,
            full_screen=False,
            erase_when_done=True,
            input=self.input,
            output=self.output,
        )
        height = self.height or max(3, app.output.get_size().rows - 4)

        async def load():
            try:
                rows = list(await candidates)
            except Exception as e:
                app.exit(exception=e)
                return
            if not rows:
                app.exit(result=[])
                return
            prompt.state = SelectionState(rows, multiple, height)
            if prompt.pending:
                logger.debug("Replaying %d keys typed while loading", len(prompt.pending))
                app.key_processor.feed_multiple(prompt.pending)
                prompt.pending = []
                app.key_processor.process_keys()
            app.invalidate()

        def start():
            if loading:
                app.create_background_task(load())

        if not loading:
            prompt.state = SelectionState(candidates, multiple, height)

        chosen = await app.run_async(pre_run=start, handle_sigint=False)
        if prompt.state is not None:
            logger.debug("Selected %d of %d", len(chosen), len(prompt.state.candidates))
        return chosen

    async def __call__(self, candidates: Candidates, multiple: bool = False) -> List[Candidate]:
        return await self.select(candidates, multiple)
