# Copyright Red Hat
#
# treecmp/compare/engine.py - Tree comparison engine
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree comparison engine
"""
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from math import floor
import logging
import json
import os

from treecmp import TREECMP_SUBSYSTEM_ENGINE, TreecmpSystemError
from treecmp.progress import ProgressFactory, TermControl

from .difftypes import DiffKind, EntryKind, Location
from .filetypes import FileTypeDetector
from .options import CompareOptions
from .treewalk import PathEntry

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_engine(msg, *args, **kwargs):
    """A wrapper for engine subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREECMP_SUBSYSTEM_ENGINE}, **kwargs)


_KIND_DESCRIPTIONS = {
    DiffKind.ONLY_IN_FIRST: "only in first folder",
    DiffKind.ONLY_IN_SECOND: "only in second folder",
    DiffKind.TYPE_DIFFERS: "type differs",
    DiffKind.SIZE_DIFFERS: "size differs",
    DiffKind.CONTENT_DIFFERS: "content differs",
    DiffKind.PERMISSION_ERROR: "permission denied",
}


@dataclass(frozen=True)
class DifferenceRecord:
    """
    A single discrepancy between two trees at one relative path.
    """

    #: Base name of the relative path
    name: str
    #: Path relative to both roots
    relative_path: str
    #: The category of difference
    kind: DiffKind
    #: The side(s) the difference pertains to
    location: Location
    #: Size of the first file (size and content differences only)
    size_a: Optional[int] = None
    #: Size of the second file (size and content differences only)
    size_b: Optional[int] = None
    #: Entry kind in the first tree, if present
    type_a: Optional[EntryKind] = None
    #: Entry kind in the second tree, if present
    type_b: Optional[EntryKind] = None
    #: Detected MIME type for file records
    file_type: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.relative_path}: {self.description()} ({self.location.value})"

    def description(self) -> str:
        """
        Return a short human readable description of this difference.

        :returns: A description such as ``size differs (2 != 4)``.
        :rtype: ``str``
        """
        desc = _KIND_DESCRIPTIONS[self.kind]
        if self.kind == DiffKind.SIZE_DIFFERS:
            desc += f" ({self.size_a} != {self.size_b})"
        elif self.kind == DiffKind.TYPE_DIFFERS and self.type_a and self.type_b:
            desc += f" ({self.type_a.value} != {self.type_b.value})"
        return desc

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``DifferenceRecord`` into a dictionary representation
        suitable for encoding as JSON.

        :returns: A dictionary mapping this instance's keys to values.
        :rtype: ``Dict[str, Any]``
        """
        out = {
            "name": self.name,
            "relative_path": self.relative_path,
            "kind": self.kind.value,
            "location": self.location.value,
            "description": self.description(),
        }
        if self.size_a is not None or self.size_b is not None:
            out["size_a"] = self.size_a
            out["size_b"] = self.size_b
        if self.type_a is not None:
            out["type_a"] = self.type_a.value
        if self.type_b is not None:
            out["type_b"] = self.type_b.value
        if self.file_type is not None:
            out["file_type"] = self.file_type
        return out

    def json(self, pretty=False) -> str:
        """
        Return a string representation of this ``DifferenceRecord`` in JSON
        notation.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :returns: A JSON representation of this instance.
        :rtype: ``str``
        """
        return json.dumps(self.to_dict(), indent=4 if pretty else None)


class CompareResults:
    """Container for tree comparison results."""

    def __init__(
        self,
        records: List[DifferenceRecord],
        options: CompareOptions,
        timestamp: int,
        unreadable: Optional[List[Tuple[Location, str]]] = None,
    ):
        """
        Initialise a new ``CompareResults`` object.

        :param records: Difference records in relative path order.
        :param options: The options used for the comparison.
        :param timestamp: UNIX time the comparison started.
        :param unreadable: (side, relative path) pairs for subtrees that
                           could not be listed.
        """
        self._records = records
        self.options = options
        self.timestamp = timestamp
        self.unreadable = unreadable or []

    def __repr__(self) -> str:
        return f"CompareResults([...], {self.options!r}, {self.timestamp})"

    def __iter__(self) -> Iterator[DifferenceRecord]:
        return iter(self._records)

    def __len__(self):
        return len(self._records)

    def __getitem__(self, index: int) -> DifferenceRecord:
        return self._records[index]

    @property
    def records(self) -> List[DifferenceRecord]:
        """
        A copy of the ordered list of difference records.
        """
        return list(self._records)

    @property
    def count(self) -> int:
        """
        Return the total number of differences: equivalent to ``len(self)``.
        """
        return len(self._records)

    def as_tuple(self) -> Tuple[List[DifferenceRecord], int]:
        """
        Return these results as a ``(records, count)`` tuple.

        :returns: The ordered record list and the total count.
        :rtype: ``Tuple[List[DifferenceRecord], int]``
        """
        return self.records, self.count

    def _of_kind(self, kind: DiffKind) -> List[DifferenceRecord]:
        return [r for r in self._records if r.kind == kind]

    @property
    def only_in_first(self) -> List[DifferenceRecord]:
        """Records for paths present only in the first tree."""
        return self._of_kind(DiffKind.ONLY_IN_FIRST)

    @property
    def only_in_second(self) -> List[DifferenceRecord]:
        """Records for paths present only in the second tree."""
        return self._of_kind(DiffKind.ONLY_IN_SECOND)

    @property
    def type_differs(self) -> List[DifferenceRecord]:
        """Records for paths with a different entry type on each side."""
        return self._of_kind(DiffKind.TYPE_DIFFERS)

    @property
    def size_differs(self) -> List[DifferenceRecord]:
        """Records for files with different sizes."""
        return self._of_kind(DiffKind.SIZE_DIFFERS)

    @property
    def content_differs(self) -> List[DifferenceRecord]:
        """Records for same-size files with different content."""
        return self._of_kind(DiffKind.CONTENT_DIFFERS)

    @property
    def permission_errors(self) -> List[DifferenceRecord]:
        """Records for files that could not be read."""
        return self._of_kind(DiffKind.PERMISSION_ERROR)

    def paths(self) -> List[str]:
        """
        Return a list of relative paths that differ.

        :returns: Path list.
        :rtype: ``List[str]``
        """
        return [record.relative_path for record in self._records]

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert these results into a dictionary suitable for encoding as
        JSON.
        """
        return {
            "timestamp": self.timestamp,
            "count": self.count,
            "differences": [record.to_dict() for record in self._records],
            "unreadable": [
                {"location": side.value, "relative_path": path}
                for side, path in self.unreadable
            ],
        }

    def json(self, pretty: bool = False) -> str:
        """
        Return JSON representation of these results.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :returns: JSON string description of the differences.
        :rtype: ``str``
        """
        return json.dumps(self.to_dict(), indent=4 if pretty else None)


def _lstat(path: str) -> Optional[os.stat_result]:
    """
    Return ``os.lstat(path)`` or ``None`` if nothing exists at ``path``.
    """
    try:
        return os.lstat(path)
    except (FileNotFoundError, NotADirectoryError):
        return None


def content_equal(path_a: str, path_b: str, chunk_size: int) -> bool:
    """
    Compare two files byte-for-byte.

    :param path_a: The first file.
    :type path_a: ``str``
    :param path_b: The second file.
    :type path_b: ``str``
    :param chunk_size: The read size to use.
    :type chunk_size: ``int``
    :returns: ``True`` if both files hold identical bytes.
    :rtype: ``bool``
    """
    with open(path_a, "rb") as file_a, open(path_b, "rb") as file_b:
        while True:
            chunk_a = file_a.read(chunk_size)
            chunk_b = file_b.read(chunk_size)
            if chunk_a != chunk_b:
                return False
            if not chunk_a:
                return True


#: The entries found for one relative path in each tree (``None`` if absent)
EntryPair = Tuple[Optional[PathEntry], Optional[PathEntry]]


class CompareEngine:
    """
    Core class for classifying the differences between two trees.
    """

    def __init__(self):
        """
        Initialise a new ``CompareEngine`` instance.
        """
        self.file_type_detector = FileTypeDetector()

    def _file_type(self, full_path: str, options: CompareOptions) -> str:
        return self.file_type_detector.detect_file_type(
            Path(full_path), use_magic=options.use_magic_file_type
        )

    @staticmethod
    def _examine(path: str, full_a: str, full_b: str) -> EntryPair:
        """
        Return the entries for ``path`` in each tree by calling ``lstat``.
        A side that cannot be examined is returned with a ``kind`` of
        ``None``.

        :raises TreecmpSystemError: On an unexpected operating system error.
        """
        entries = []
        for full_path in (full_a, full_b):
            try:
                path_stat = _lstat(full_path)
            except PermissionError as err:
                _log_debug_engine("Cannot stat '%s': %s", full_path, err)
                entries.append(PathEntry(path, None))
                continue
            except OSError as err:
                raise TreecmpSystemError(f"Error examining '{path}': {err}") from err
            entries.append(
                PathEntry.from_stat(path, path_stat) if path_stat is not None else None
            )
        return entries[0], entries[1]

    # pylint: disable=too-many-return-statements,too-many-arguments
    # pylint: disable=too-many-positional-arguments
    def classify(
        self,
        root_a: str,
        root_b: str,
        path: str,
        options: Optional[CompareOptions] = None,
        entries: Optional[EntryPair] = None,
    ) -> Optional[DifferenceRecord]:
        """
        Classify the difference (if any) at relative path ``path``.

        :param root_a: The first tree root.
        :type root_a: ``str``
        :param root_b: The second tree root.
        :type root_b: ``str``
        :param path: A '/' separated path relative to both roots.
        :type path: ``str``
        :param options: Options to apply to the comparison.
        :type options: ``CompareOptions``
        :param entries: The ``PathEntry`` found for ``path`` when walking
                        each root, ``None`` for a side where it is absent.
                        Both sides are examined with ``lstat`` if not given.
        :type entries: ``Optional[Tuple[Optional[PathEntry], Optional[PathEntry]]]``
        :returns: A ``DifferenceRecord`` or ``None`` if ``path`` does not
                  differ.
        :rtype: ``Optional[DifferenceRecord]``
        :raises TreecmpSystemError: On an unexpected operating system error.
        """
        options = options or CompareOptions()
        name = path.rsplit("/", maxsplit=1)[-1]
        full_a = os.path.join(root_a, *path.split("/"))
        full_b = os.path.join(root_b, *path.split("/"))

        if entries is None:
            entries = self._examine(path, full_a, full_b)
        entry_a, entry_b = entries

        if entry_a is None and entry_b is None:
            _log_debug_engine("Path '%s' vanished from both trees", path)
            return None

        if any(entry is not None and entry.kind is None for entry in entries):
            return DifferenceRecord(name, path, DiffKind.PERMISSION_ERROR, Location.BOTH)

        if entry_b is None:
            return DifferenceRecord(
                name,
                path,
                DiffKind.ONLY_IN_FIRST,
                Location.FIRST,
                type_a=entry_a.kind,
                file_type=(
                    self._file_type(full_a, options)
                    if entry_a.kind == EntryKind.FILE
                    else None
                ),
            )

        if entry_a is None:
            return DifferenceRecord(
                name,
                path,
                DiffKind.ONLY_IN_SECOND,
                Location.SECOND,
                type_b=entry_b.kind,
                file_type=(
                    self._file_type(full_b, options)
                    if entry_b.kind == EntryKind.FILE
                    else None
                ),
            )

        if entry_a.kind != entry_b.kind:
            return DifferenceRecord(
                name,
                path,
                DiffKind.TYPE_DIFFERS,
                Location.BOTH,
                type_a=entry_a.kind,
                type_b=entry_b.kind,
            )

        if entry_a.kind != EntryKind.FILE:
            return None

        try:
            return self._classify_files(
                name, path, full_a, full_b, entry_a.size, entry_b.size, options
            )
        except FileNotFoundError:
            _log_debug_engine("Path '%s' vanished during comparison", path)
            return self.classify(root_a, root_b, path, options)

    # pylint: disable=too-many-arguments,too-many-positional-arguments
    def _classify_files(
        self,
        name: str,
        path: str,
        full_a: str,
        full_b: str,
        size_a: int,
        size_b: int,
        options: CompareOptions,
    ) -> Optional[DifferenceRecord]:
        """
        Compare two regular files: readability, then size, then content.
        """
        file_kind = {"type_a": EntryKind.FILE, "type_b": EntryKind.FILE}

        def _permission_error() -> DifferenceRecord:
            return DifferenceRecord(
                name, path, DiffKind.PERMISSION_ERROR, Location.BOTH, **file_kind
            )

        if not os.access(full_a, os.R_OK) or not os.access(full_b, os.R_OK):
            if not (os.path.lexists(full_a) and os.path.lexists(full_b)):
                raise FileNotFoundError(f"'{path}' vanished during comparison")
            _log_debug_engine("Cannot read '%s' in one or both trees", path)
            return _permission_error()

        if size_a != size_b:
            return DifferenceRecord(
                name,
                path,
                DiffKind.SIZE_DIFFERS,
                Location.BOTH,
                size_a=size_a,
                size_b=size_b,
                file_type=self._file_type(full_a, options),
                **file_kind,
            )

        try:
            equal = content_equal(full_a, full_b, options.chunk_size)
        except PermissionError as err:
            _log_debug_engine("Cannot read '%s': %s", path, err)
            return _permission_error()
        except FileNotFoundError:
            raise
        except OSError as err:
            raise TreecmpSystemError(f"Error comparing '{path}': {err}") from err

        if equal:
            return None

        return DifferenceRecord(
            name,
            path,
            DiffKind.CONTENT_DIFFERS,
            Location.BOTH,
            size_a=size_a,
            size_b=size_b,
            file_type=self._file_type(full_a, options),
            **file_kind,
        )

    # pylint: disable=too-many-arguments,too-many-positional-arguments
    def compute_diff(
        self,
        root_a: str,
        root_b: str,
        all_paths: Iterable[str],
        options: Optional[CompareOptions] = None,
        term_control: Optional[TermControl] = None,
        trees: Optional[Tuple[Mapping[str, PathEntry], Mapping[str, PathEntry]]] = None,
    ) -> CompareResults:
        """
        Main comparison logic: classify every path in ``all_paths`` in
        sorted order.

        :param root_a: The first tree root.
        :type root_a: ``str``
        :param root_b: The second tree root.
        :type root_b: ``str``
        :param all_paths: The union of both trees' relative paths.
        :type all_paths: ``Iterable[str]``
        :param options: Options to apply to the comparison.
        :type options: ``CompareOptions``
        :param term_control: A ``TermControl`` instance to use for progress
                             output.
        :type term_control: ``TermControl``
        :param trees: The walked entries of each root indexed by relative
                      path. Paths are examined with ``lstat`` if not given.
        :type trees: ``Optional[Tuple[Mapping[str, PathEntry], Mapping[str, PathEntry]]]``
        :returns: A ``CompareResults`` instance containing the
                  ``DifferenceRecord`` objects in relative path order.
        :rtype: ``CompareResults``
        """
        options = options or CompareOptions()
        paths = sorted(set(all_paths))
        records: List[DifferenceRecord] = []

        start_time = datetime.now()
        timestamp = floor(start_time.timestamp())
        _log_debug("Starting compute_diff with %d paths", len(paths))

        if not paths:
            _log_info("No paths to compare; returning empty CompareResults")
            return CompareResults(records, options, timestamp)

        progress = ProgressFactory.get_progress(
            "Comparing",
            quiet=options.quiet,
            term_control=term_control,
        )

        def _classify(path: str) -> Optional[DifferenceRecord]:
            entries = None
            if trees is not None:
                entries = (trees[0].get(path), trees[1].get(path))
            return self.classify(root_a, root_b, path, options, entries)

        progress.start(len(paths))
        try:
            if options.workers > 1:
                with ThreadPoolExecutor(
                    max_workers=options.workers, thread_name_prefix="treecmp-classify"
                ) as executor:
                    try:
                        # map() yields in submission order: output stays sorted.
                        results = executor.map(_classify, paths)
                        for i, record in enumerate(results, 1):
                            progress.progress(i)
                            if record is not None:
                                records.append(record)
                    except BaseException:
                        # Do not wait for queued paths before re-raising.
                        executor.shutdown(wait=False, cancel_futures=True)
                        raise
            else:
                for i, path in enumerate(paths, 1):
                    record = _classify(path)
                    progress.progress(i, path)
                    if record is not None:
                        _log_debug_engine("Found difference: %s", record)
                        records.append(record)
        except (KeyboardInterrupt, SystemExit, TreecmpSystemError):
            progress.cancel("Quit!")
            raise

        end_time = datetime.now()
        progress.end(f"Compared {len(paths)} paths in {end_time - start_time}")
        _log_info(
            "Compared %d paths in %s: found %d differences",
            len(paths),
            end_time - start_time,
            len(records),
        )
        return CompareResults(records, options, timestamp)
