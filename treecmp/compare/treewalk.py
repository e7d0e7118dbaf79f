# Copyright Red Hat
#
# treecmp/compare/treewalk.py - Tree comparison tree walk
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree walking support for tree comparison.
"""
from typing import Dict, List, Optional, Tuple
from fnmatch import fnmatch
from datetime import datetime
import itertools
import logging
import os

from treecmp import TREECMP_SUBSYSTEM_WALK, PlatformInfo, detect_platform

from .difftypes import EntryKind
from .options import CompareOptions

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_walk(msg, *args, **kwargs):
    """A wrapper for walk subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREECMP_SUBSYSTEM_WALK}, **kwargs)


class PathEntry:
    """
    A path relative to a tree root paired with the kind of entry that
    was discovered there. Regular files also carry the size seen by the
    walk.
    """

    __slots__ = ("path", "kind", "size")

    def __init__(
        self, path: str, kind: Optional[EntryKind], size: Optional[int] = None
    ):
        """
        Initialise a new ``PathEntry``.

        :param path: The '/' separated path relative to the tree root.
        :type path: ``str``
        :param kind: The entry kind, or ``None`` if the entry could be
                     listed but not examined.
        :type kind: ``Optional[EntryKind]``
        :param size: The size in bytes of a regular file.
        :type size: ``Optional[int]``
        """
        self.path: str = path
        self.kind: Optional[EntryKind] = kind
        self.size: Optional[int] = size

    @classmethod
    def from_stat(cls, path: str, path_stat: os.stat_result) -> "PathEntry":
        """
        Build a ``PathEntry`` for ``path`` from the result of ``os.lstat()``.
        """
        kind = EntryKind.from_mode(path_stat.st_mode)
        size = path_stat.st_size if kind == EntryKind.FILE else None
        return cls(path, kind, size)

    def __repr__(self):
        kind = self.kind.value if self.kind else None
        return f"PathEntry({self.path!r}, {kind})"

    @property
    def name(self) -> str:
        """
        The base name of this entry's relative path.
        """
        return self.path.rsplit("/", maxsplit=1)[-1]


class TreeWalker:
    """
    Simple file system tree walker for comparisons.
    """

    def __init__(
        self,
        options: Optional[CompareOptions] = None,
        platform: Optional[PlatformInfo] = None,
    ):
        """
        Initialise a new ``TreeWalker`` object.

        :param options: Options to control this ``TreeWalker`` instance.
        :type options: ``CompareOptions``
        :param platform: The platform description used to normalise path
                         separators. Detected if not given.
        :type platform: ``Optional[PlatformInfo]``
        """
        self.options: CompareOptions = options or CompareOptions()
        self.platform: PlatformInfo = platform or detect_platform()
        self.exclude_patterns: Tuple[str, ...] = self.options.exclude_patterns

    def _relative(self, root: str, path: str) -> str:
        """
        Return ``path`` relative to ``root`` with '/' separators.
        """
        rel = os.path.relpath(path, root)
        if self.platform.sep != "/":
            rel = rel.replace(self.platform.sep, "/")
        return rel

    def is_excluded(self, rel_path: str) -> bool:
        """
        Test whether ``rel_path`` matches any configured exclude pattern.

        Patterns are matched against both the full relative path and the
        base name, so ``*.tmp`` excludes temporary files at any depth.

        :param rel_path: A '/' separated path relative to a tree root.
        :type rel_path: ``str``
        :returns: ``True`` if the path is excluded.
        :rtype: ``bool``
        """
        if not self.exclude_patterns:
            return False
        name = rel_path.rsplit("/", maxsplit=1)[-1]
        return any(
            fnmatch(rel_path, pat) or fnmatch(name, pat) for pat in self.exclude_patterns
        )

    def walk_tree(self, root: str) -> Tuple[Dict[str, PathEntry], List[str]]:
        """
        Walk the file system tree beneath ``root`` and return its entries
        indexed by relative path.

        The root itself is not included. Symbolic links to directories are
        recorded but not descended. Directories that cannot be listed are
        skipped: their relative paths are returned in the second element
        of the result so that callers can report the omission.

        :param root: The directory to walk.
        :type root: ``str``
        :returns: A tuple of (relative path -> ``PathEntry`` mapping, list
                  of unreadable subtree relative paths).
        :rtype: ``Tuple[Dict[str, PathEntry], List[str]]``
        """
        root = os.path.abspath(root)
        tree: Dict[str, PathEntry] = {}
        unreadable: List[str] = []
        excluded = 0

        def _onerror(err: OSError):
            where = err.filename if err.filename else root
            rel = self._relative(root, where)
            if isinstance(err, PermissionError):
                _log_warn(
                    "Cannot list directory '%s' (%s): subtree omitted from comparison",
                    where,
                    err.strerror,
                )
                unreadable.append(rel)
            elif isinstance(err, FileNotFoundError):
                _log_debug_walk("Directory '%s' vanished during walk", where)
            else:
                _log_warn("Error walking directory '%s': %s", where, err)
                unreadable.append(rel)

        _log_info("Gathering paths to compare from %s", root)
        start_time = datetime.now()

        for dirpath, dirnames, filenames in os.walk(root, onerror=_onerror):
            pruned = []
            for name in itertools.chain(dirnames, filenames):
                full_path = os.path.join(dirpath, name)
                rel_path = self._relative(root, full_path)
                if self.is_excluded(rel_path):
                    excluded += 1
                    pruned.append(name)
                    continue

                try:
                    path_stat = os.lstat(full_path)
                except FileNotFoundError:
                    _log_debug_walk("Path '%s' vanished during walk", full_path)
                    continue
                except PermissionError:
                    _log_debug_walk("Cannot stat '%s': permission denied", full_path)
                    tree[rel_path] = PathEntry(rel_path, None)
                    continue

                tree[rel_path] = PathEntry.from_stat(rel_path, path_stat)

            if pruned:
                dirnames[:] = [name for name in dirnames if name not in pruned]

        end_time = datetime.now()
        _log_info(
            "Found %d paths beneath %s in %s (excluded %d, unreadable %d)",
            len(tree),
            root,
            end_time - start_time,
            excluded,
            len(unreadable),
        )
        return tree, sorted(unreadable)
