"""Terminal control for the stats dashboard."""

from __future__ import annotations

import os
import signal
from types import FrameType
from typing import Callable, TextIO


class Term:
    """ANSI escape sequences used by the dashboard."""

    CLEAR = "\033[2J\033[H"
    ALT_SCREEN = "\033[?1049h"
    MAIN_SCREEN = "\033[?1049l"


class AlternateScreen:
    """Scoped alternate screen buffer.

    Entering switches to the alternate buffer and installs a SIGINT
    handler that restores the main buffer and ends the process at once.
    Leaving restores the main buffer and the previous handler, also when
    the body raised.

    Example:
        with AlternateScreen(sys.stdout):
            render_forever()
    """

    def __init__(
        self,
        stream: TextIO,
        exit_process: Callable[[int], object] = os._exit,
        install_handler: bool = True,
    ) -> None:
        self._stream = stream
        self._exit_process = exit_process
        self._install_handler = install_handler
        self._previous_handler: signal.Handlers | Callable | int | None = None
        self._active = False

    def __enter__(self) -> "AlternateScreen":
        self._stream.write(Term.ALT_SCREEN)
        self._stream.flush()
        self._active = True
        if self._install_handler:
            self._previous_handler = signal.signal(signal.SIGINT, self._on_interrupt)
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.restore()
        if self._install_handler and self._previous_handler is not None:
            signal.signal(signal.SIGINT, self._previous_handler)
            self._previous_handler = None

    def restore(self) -> None:
        """Switch back to the main buffer. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._stream.write(Term.MAIN_SCREEN)
        self._stream.flush()

    def _on_interrupt(self, signum: int, frame: FrameType | None) -> None:
        self.restore()
        self._exit_process(0)
