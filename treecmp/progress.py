# Copyright Red Hat
#
# treecmp/progress.py - Tree comparison terminal control and progress
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Terminal control and progress indicator
"""
from typing import List, Optional, TextIO
from datetime import datetime, timedelta
from abc import ABC, abstractmethod
import curses
import sys
import os
import re

from treecmp import register_progress, unregister_progress

#: Default number of columns if not detected from terminal.
DEFAULT_COLUMNS = 80

#: Minimum width of a progress bar.
PROGRESS_MIN_WIDTH = 10

#: Default width of a progress bar as a fraction of the terminal size.
DEFAULT_WIDTH_FRAC = 0.5

#: Default redraw rate for ``Progress``
DEFAULT_FPS = 10

#: Percentage step between ``SimpleProgress`` report lines
SIMPLE_STEP_PERCENT = 10


class TermControl:
    """
    A class for portable terminal control and output.

    Uses the curses package to set up appropriate terminal control
    sequences for the current terminal. Each capability is an instance
    attribute holding the control sequence, or the empty string if the
    terminal (or the ``color`` setting) does not allow it, so that
    output can be composed unconditionally:

        >>> term = TermControl()
        >>> print("This is " + term.GREEN + "green" + term.NORMAL)

    If the width of the terminal is known it is stored in ``columns``.
    """

    # Cursor movement:
    BOL: str = ""  #: Move the cursor to the beginning of the line
    UP: str = ""  #: Move the cursor up one line

    # Deletion:
    CLEAR_EOL: str = ""  #: Clear to the end of the line.

    # Output modes:
    BOLD: str = ""  #: Turn on bold mode
    NORMAL: str = ""  #: Turn off all modes

    # Cursor display:
    HIDE_CURSOR: str = ""  #: Make the cursor invisible
    SHOW_CURSOR: str = ""  #: Make the cursor visible

    # Foreground colors:
    BLACK: str = ""  #: Black foreground color
    BLUE: str = ""  #: Blue foreground color
    GREEN: str = ""  #: Green foreground color
    CYAN: str = ""  #: Cyan foreground color
    RED: str = ""  #: Red foreground color
    MAGENTA: str = ""  #: Magenta foreground color
    YELLOW: str = ""  #: Yellow foreground color
    WHITE: str = ""  #: White foreground color

    # Terminal size:
    columns: Optional[int] = None  #: Terminal width

    _STRING_CAPABILITIES: List[str] = (
        "BOL:cr UP:cuu1 CLEAR_EOL:el BOLD:bold NORMAL:sgr0 "
        "HIDE_CURSOR:civis SHOW_CURSOR:cnorm"
    ).split()
    _ANSI_COLORS: List[str] = "BLACK RED GREEN YELLOW BLUE MAGENTA CYAN WHITE".split()

    def _force_ansi(self):
        """
        Set plain ANSI color sequences when terminfo is unavailable but
        color output was explicitly requested.
        """
        for i, color in enumerate(self._ANSI_COLORS):
            setattr(self, color, f"\033[0;3{i}m")
        self.BOLD = "\033[1m"
        self.NORMAL = "\033[0m"

    def __init__(self, term_stream: Optional[TextIO] = None, color: str = "auto"):
        """
        Initialize terminal capabilities and size information.

        If the output stream is not a tty (and ``color`` is not "always"),
        or terminal setup fails, the instance has no capabilities and all
        control attributes remain empty strings.

        :param term_stream: Output stream to query for capabilities.
        :type term_stream: ``Optional[TextIO]``
        :param color: A string to control color rendering: "auto", "always", or
                      "never".
        :type color: ``str``
        """
        if color not in ("auto", "always", "never"):
            raise ValueError(f"Invalid color mode: {color}")

        self.term_stream = term_stream if term_stream is not None else sys.stdout
        self.color = color

        if color != "always":
            isatty = getattr(self.term_stream, "isatty", None)
            if isatty is None or not isatty():
                return

        try:
            curses.setupterm(fd=_stream_fileno(self.term_stream))
        # curses.error is not a proper exception class on all builds.
        except BaseException as err:  # pylint: disable=broad-exception-caught
            if isinstance(err, (KeyboardInterrupt, SystemExit)):  # pragma: no cover
                raise
            if color == "always":
                self._force_ansi()
            return

        cols = curses.tigetnum("cols")
        self.columns = cols if cols and cols > 0 else None

        for capability in self._STRING_CAPABILITIES:
            (attr, cap_name) = capability.split(":")
            setattr(self, attr, self._tigetstr(cap_name))

        if color != "never":
            set_fg_ansi = self._tigetstr("setaf")
            if set_fg_ansi:
                for i, name in enumerate(self._ANSI_COLORS):
                    value = curses.tparm(set_fg_ansi.encode("utf8"), i)
                    setattr(self, name, value.decode("utf8") or "")
            elif color == "always":
                self._force_ansi()
        else:
            self.BOLD = ""

    @staticmethod
    def _tigetstr(cap_name):
        # Strip terminfo padding delays of the form "$<2>".
        cap = curses.tigetstr(cap_name)
        cap = cap.decode(encoding="utf8") if cap else ""
        return cap.split("$", maxsplit=1)[0]

    def render(self, template):
        """
        Replace each ``${NAME}`` substitution in ``template`` with the
        corresponding terminal control string, or the empty string if the
        capability is not defined.

        :param template: Template string containing ${NAME} patterns.
        :type template: ``str``
        :returns: Rendered string with substitutions applied.
        :rtype: ``str``
        """
        return re.sub(r"\$\$|\${\w+}", self._render_sub, template)

    def _render_sub(self, match):
        s = match.group()
        if s == "$$":
            return "$"
        return getattr(self, s[2:-1], "")


def _stream_fileno(stream: TextIO) -> int:
    """
    Return the file descriptor for ``stream`` or the standard output
    descriptor if it has none.
    """
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        return sys.__stdout__.fileno() if sys.__stdout__ else 1


def _flush_with_broken_pipe_guard(stream: TextIO) -> None:
    """
    Handle ``BrokenPipeError`` when attempting to flush output streams.

    :param stream: The stream to flush.
    :type stream: TextIO
    """
    if stream is None or not hasattr(stream, "flush"):
        return
    try:
        stream.flush()
    except BrokenPipeError as err:
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            if hasattr(stream, "fileno"):
                os.dup2(devnull, stream.fileno())
        finally:
            os.close(devnull)
        raise SystemExit() from err


class ProgressBase(ABC):
    """
    An abstract progress reporting class.
    """

    def __init__(self, header: str = "", register: bool = True):
        """
        Initialize base progress state.

        :param header: The progress report header.
        :type header: ``str``
        :param register: Register this ``ProgressBase`` for log callbacks.
        :type register: ``bool``
        """
        self.total: int = 0
        self.done: int = 0
        self.header: str = header
        self.first_update: bool = True
        self.registered: bool = False
        self.register: bool = register

    def reset_position(self):
        """Mark progress output as displaced by external output."""
        self.first_update = True

    def start(self, total: int):
        """
        Begin a progress run with the specified ``total``.

        :param total: The total number of expected progress items.
        :type total: ``int``
        """
        if total <= 0:
            raise ValueError("total must be positive.")

        self.total = total
        self.done = 0

        if self.register:
            register_progress(self)

        self._do_start()

    @abstractmethod
    def _do_start(self):
        """
        Hook invoked when progress begins.
        """

    def _check_in_progress(self, done: int, step: str):
        """
        Validate that progress is active and ``done`` is in range.

        :raises ``ValueError``: If progress has not started, or ``done`` is
                                outside ``[0..total]``.
        """
        theclass = self.__class__.__name__
        if self.total == 0:
            raise ValueError(f"{theclass}.{step}() called before start()")

        if done < 0 or done > self.total:
            raise ValueError(f"{theclass}.{step}() done out of range: {done}")

    def progress(self, done: int, message: Optional[str] = None):
        """
        Advance the progress indicator to the specified ``done`` count.

        :param done: The number of completed progress items.
        :type done: ``int``
        :param message: An optional progress message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(done, "progress")
        self.done = done
        self._do_progress(done, message)

    @abstractmethod
    def _do_progress(self, done: int, message: Optional[str] = None):
        """
        Hook for subclasses to update the progress display.
        """

    def end(self, message: Optional[str] = None):
        """
        End the progress run and finalize the display.

        :param message: An optional completion message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(self.total, "end")
        self._do_end(message)
        self.total = 0
        if self.registered:
            unregister_progress(self)

    @abstractmethod
    def _do_end(self, message: Optional[str] = None):
        """
        Perform final end-of-progress handling.
        """

    def cancel(self, message: Optional[str] = None):
        """
        End the progress run with error and finalize the display.

        :param message: An optional error message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(self.total, "cancel")
        self._do_end(message)
        self.total = 0
        if self.registered:
            unregister_progress(self)


class Progress(ProgressBase):
    """
    A single line colored progress bar that redraws in place:

        Comparing: 20% [===========---------------------------------]
    """

    BAR = (
        "${BOLD}${CYAN}%s${NORMAL}: %3d%% "
        "${GREEN}[${BOLD}%s%s${NORMAL}${GREEN}]${NORMAL}"
    )  #: Progress bar format string

    FIXED = 9  #: Length of fixed characters in BAR.

    def __init__(
        self,
        header: str,
        register: bool = True,
        term_control: Optional[TermControl] = None,
        width_frac: float = DEFAULT_WIDTH_FRAC,
    ):
        """
        Initialise a terminal progress bar.

        :param header: The progress header to display.
        :type header: ``str``
        :param register: Register this ``Progress`` for log callbacks.
        :type register: ``bool``
        :param term_control: An initialised ``TermControl`` for the output
                             stream.
        :type term_control: ``Optional[TermControl]``
        :param width_frac: Fraction of the terminal width used by the bar.
        :type width_frac: ``float``
        :raises ValueError: If terminal lacks required capabilities.
        """
        super().__init__(header=header, register=register)
        self.term: TermControl = term_control or TermControl(term_stream=sys.stderr)
        self.stream: TextIO = self.term.term_stream

        if not (self.term.CLEAR_EOL and self.term.BOL and self.term.UP):
            raise ValueError("Terminal does not support required control characters.")

        columns = self.term.columns or DEFAULT_COLUMNS
        self.width: int = max(
            PROGRESS_MIN_WIDTH, round((columns - self.FIXED - len(header)) * width_frac)
        )
        self.pbar: str = self.term.render(self.BAR)
        self._interval = timedelta(seconds=1.0 / DEFAULT_FPS)
        self._last: Optional[datetime] = None

    def _do_start(self):
        self._last = datetime.now() - self._interval
        self.first_update = True
        print(self.term.HIDE_CURSOR, end="", file=self.stream)

    def _draw(self, done: int):
        # The cursor rests on the line below the bar. After log output the
        # bar is drawn on a fresh line rather than over the previous one.
        if self.first_update:
            prefix = self.term.BOL
            self.first_update = False
        else:
            prefix = self.term.BOL + self.term.UP + self.term.CLEAR_EOL
        percent = float(done) / float(self.total)
        n = int(self.width * percent)
        print(
            prefix
            + self.pbar % (self.header, percent * 100, "=" * n, "-" * (self.width - n))
            + "\n",
            end="",
            file=self.stream,
        )
        _flush_with_broken_pipe_guard(self.stream)

    def _do_progress(self, done: int, message: Optional[str] = None):
        now = datetime.now()
        if now - self._last >= self._interval or done == self.total:
            self._last = now
            self._draw(done)

    def _do_end(self, message: Optional[str] = None):
        self._draw(self.done)
        print(
            self.term.BOL + self.term.UP + self.term.CLEAR_EOL + self.term.SHOW_CURSOR,
            end="",
            file=self.stream,
        )
        if message:
            print(message, file=self.stream)
        _flush_with_broken_pipe_guard(self.stream)


class SimpleProgress(ProgressBase):
    """
    A line based progress report that does not rely on terminal
    capabilities: one line is printed each time another
    ``SIMPLE_STEP_PERCENT`` of the work completes.
    """

    def __init__(
        self,
        header: str,
        register: bool = True,
        term_stream: Optional[TextIO] = None,
    ):
        super().__init__(header=header, register=register)
        self.stream: TextIO = term_stream or sys.stderr
        self._next_step: int = 0

    def _do_start(self):
        self._next_step = SIMPLE_STEP_PERCENT

    def _do_progress(self, done: int, message: Optional[str] = None):
        percent = (100 * done) // self.total
        if percent < self._next_step:
            return
        while self._next_step <= percent:
            self._next_step += SIMPLE_STEP_PERCENT
        print(f"{self.header}: {percent:3d}% {message or ''}".rstrip(), file=self.stream)
        _flush_with_broken_pipe_guard(self.stream)

    def _do_end(self, message: Optional[str] = None):
        if message:
            print(f"{self.header}: {message}", file=self.stream)
        _flush_with_broken_pipe_guard(self.stream)


class NullProgress(ProgressBase):
    """
    A progress class that produces no output.
    """

    def _do_start(self):
        return

    def _do_progress(self, done: int, message: Optional[str] = None):
        return

    def _do_end(self, message: Optional[str] = None):
        return


class ProgressFactory:
    """
    A factory for constructing progress objects.
    """

    @staticmethod
    def get_progress(
        header: str,
        quiet: bool = False,
        term_stream: Optional[TextIO] = None,
        term_control: Optional[TermControl] = None,
        register: bool = True,
    ) -> ProgressBase:
        """
        Return an appropriate ProgressBase implementation.

        :param header: The progress report header.
        :type header: ``str``
        :param quiet: Suppress all output.
        :type quiet: ``bool``
        :param term_stream: An optional ``TextIO`` output object.
                            Defaults to ``sys.stderr`` if unspecified.
        :type term_stream: ``Optional[TextIO]``
        :param term_control: An optional ``TermControl`` object to use
                             for the progress report. Overrides
                             ``term_stream`` when set.
        :type term_control: ``Optional[TermControl]``
        :param register: Register the new object with the log system for
                         notification callbacks.
        :type register: ``bool``
        :returns: An appropriate progress implementation.
        :rtype: ``ProgressBase``
        """
        if quiet:
            return NullProgress(header, register=register)

        if term_control:
            term_stream = term_control.term_stream
        term_stream = term_stream or sys.stderr

        if not hasattr(term_stream, "isatty") or not term_stream.isatty():
            return SimpleProgress(header, register=register, term_stream=term_stream)

        try:
            return Progress(
                header,
                register=register,
                term_control=term_control or TermControl(term_stream=term_stream),
            )
        except ValueError:
            return SimpleProgress(header, register=register, term_stream=term_stream)


__all__ = [
    "DEFAULT_COLUMNS",
    "NullProgress",
    "Progress",
    "ProgressBase",
    "ProgressFactory",
    "SimpleProgress",
    "TermControl",
]
