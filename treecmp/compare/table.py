# Copyright Red Hat
#
# treecmp/compare/table.py - Tree comparison table rendering
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Render comparison results as a fixed-width, color-coded table.
"""
from typing import List, Optional
import logging
import sys
import os

from treecmp.progress import DEFAULT_COLUMNS, TermControl

from .difftypes import DiffKind, Location
from .engine import CompareResults, DifferenceRecord

_log = logging.getLogger(__name__)

_log_debug = _log.debug

#: Column headings in display order
HEADINGS = ("FILENAME", "RELATIVE PATH", "DIFFERENCE", "FOLDER")

#: Minimum column widths (at ``DEFAULT_COLUMNS`` terminal width)
_MIN_WIDTHS = (18, 27, 25, 7)

#: Marker appended to truncated fields
_ELLIPSIS = "..."

_FOLDER_NAMES = {
    Location.FIRST: "FOLDER1",
    Location.SECOND: "FOLDER2",
    Location.BOTH: "BOTH",
}


def truncate(text: str, width: int) -> str:
    """
    Truncate ``text`` to at most ``width`` characters, marking truncation
    with a trailing "...".

    :param text: The text to truncate.
    :type text: ``str``
    :param width: The maximum width.
    :type width: ``int``
    :returns: ``text`` or a truncated copy.
    :rtype: ``str``
    """
    if len(text) <= width:
        return text
    if width <= len(_ELLIPSIS):
        return text[:width]
    return text[: width - len(_ELLIPSIS)] + _ELLIPSIS


def printable(text: str) -> str:
    """
    Return ``text`` with file name bytes that could not be decoded (held
    as surrogate escapes) rendered as backslash escapes.

    :param text: A path or file name as returned by ``os.walk()``.
    :type text: ``str``
    :returns: A string that encodes to UTF-8 without error.
    :rtype: ``str``
    """
    return os.fsencode(text).decode(sys.getfilesystemencoding(), "backslashreplace")


def summary(count: int) -> str:
    """
    Return the summary line for ``count`` differences.
    """
    if not count:
        return "folders are identical"
    return f"{count} difference{'s' if count != 1 else ''} found"


class DiffTable:
    """Top level interface for rendering difference tables"""

    def __init__(
        self,
        results: CompareResults,
        color: str = "auto",
        term_control: Optional[TermControl] = None,
        columns: Optional[int] = None,
    ):
        """
        Initialise a new ``DiffTable`` object.

        :param results: The comparison results to render.
        :type results: ``CompareResults``
        :param color: A string to control color table rendering: "auto",
                      "always", or "never".
        :type color: ``str``
        :param term_control: An optional ``TermControl`` instance to use for
                             formatting. The supplied instance overrides any
                             ``color`` argument if set.
        :type term_control: ``Optional[TermControl]``
        :param columns: Total table width. Defaults to the terminal width if
                        known or ``DEFAULT_COLUMNS`` otherwise.
        :type columns: ``Optional[int]``
        """
        self.results: CompareResults = results
        self.term_control: TermControl = term_control or TermControl(color=color)

        self.columns: int = columns or self.term_control.columns or DEFAULT_COLUMNS
        self.widths: List[int] = self._column_widths(self.columns)

        self.color_map = {
            DiffKind.ONLY_IN_FIRST: self.term_control.YELLOW,
            DiffKind.ONLY_IN_SECOND: self.term_control.GREEN,
            DiffKind.SIZE_DIFFERS: self.term_control.RED,
            DiffKind.CONTENT_DIFFERS: self.term_control.RED,
            DiffKind.TYPE_DIFFERS: self.term_control.CYAN,
            DiffKind.PERMISSION_ERROR: self.term_control.CYAN,
        }

    @staticmethod
    def _column_widths(columns: int) -> List[int]:
        """
        Distribute ``columns`` over the table columns: space beyond the
        minimum widths goes to FILENAME (one third) and RELATIVE PATH (two
        thirds).
        """
        separators = len(HEADINGS) - 1
        extra = max(0, columns - sum(_MIN_WIDTHS) - separators)
        name_w, path_w, diff_w, folder_w = _MIN_WIDTHS
        return [name_w + extra // 3, path_w + extra - extra // 3, diff_w, folder_w]

    def _format_row(self, fields: List[str], color: str = "") -> str:
        cells = [
            truncate(text, width).ljust(width)
            for text, width in zip(fields, self.widths)
        ]
        # No padding after the final column.
        cells[-1] = cells[-1].rstrip()
        row = " ".join(cells)
        if color:
            return f"{color}{row}{self.term_control.NORMAL}"
        return row

    def format_record(self, record: DifferenceRecord) -> str:
        """
        Format one ``DifferenceRecord`` as a color-coded table row.

        :param record: The record to format.
        :type record: ``DifferenceRecord``
        :returns: The formatted row.
        :rtype: ``str``
        """
        fields = [
            printable(record.name),
            printable(record.relative_path),
            record.description(),
            _FOLDER_NAMES[record.location],
        ]
        return self._format_row(fields, self.color_map.get(record.kind, ""))

    def render(self) -> str:
        """
        Render the complete table: heading, one row per difference, the
        summary line and any unreadable subtree warnings.

        :returns: The rendered table.
        :rtype: ``str``
        """
        lines = []
        if self.results.count:
            heading = self._format_row(list(HEADINGS))
            lines.append(f"{self.term_control.BOLD}{heading}{self.term_control.NORMAL}")
            lines.append("-" * min(self.columns, sum(self.widths) + len(HEADINGS) - 1))
            lines.extend(self.format_record(record) for record in self.results)
            lines.append("")

        lines.append(summary(self.results.count))

        for side, path in self.results.unreadable:
            lines.append(
                f"{self.term_control.YELLOW}warning: {_FOLDER_NAMES[side]} "
                f"subtree '{printable(path)}' could not be read and was not compared"
                f"{self.term_control.NORMAL}"
            )
        _log_debug("Rendered %d table rows", self.results.count)
        return "\n".join(lines)
