# Copyright Red Hat
#
# treecmp/compare/comparer.py - Top-level tree comparison interface
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Top-level tree comparison interface.
"""
from typing import Dict, List, Optional, Tuple
from concurrent.futures import ThreadPoolExecutor
import logging
import sys
import os

from treecmp import PlatformInfo, TreecmpArgumentError, detect_platform
from treecmp.progress import TermControl

from .difftypes import Location
from .engine import CompareEngine, CompareResults, DifferenceRecord
from .options import CompareOptions
from .treewalk import PathEntry, TreeWalker

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class TreeComparer:
    """
    Top-level interface for comparing two directory trees.
    """

    def __init__(
        self,
        options: Optional[CompareOptions] = None,
        platform: Optional[PlatformInfo] = None,
        color: str = "auto",
        term_control: Optional[TermControl] = None,
    ):
        """
        Initialise a new ``TreeComparer``.

        :param options: Options to control this ``TreeComparer`` instance.
        :type options: ``CompareOptions``
        :param platform: The platform to compare on. Detected if not given.
        :type platform: ``Optional[PlatformInfo]``
        :param color: A string to control color progress rendering: "auto",
                      "always", or "never".
        :type color: ``str``
        :param term_control: An optional ``TermControl`` instance to use for
                             progress output. The supplied instance overrides
                             any ``color`` argument if set.
        :type term_control: ``Optional[TermControl]``
        """
        self.options: CompareOptions = options or CompareOptions()
        self.platform: PlatformInfo = platform or detect_platform()
        self.tree_walker: TreeWalker = TreeWalker(self.options, self.platform)
        self.engine: CompareEngine = CompareEngine()
        self._term_control: Optional[TermControl] = term_control or TermControl(
            term_stream=sys.stderr, color=color
        )

    def _walk_roots(
        self, root_a: str, root_b: str
    ) -> Tuple[Tuple[Dict[str, PathEntry], List[str]], ...]:
        """
        Walk both roots, concurrently if more than one worker is configured.
        """
        if self.options.workers > 1:
            with ThreadPoolExecutor(
                max_workers=2, thread_name_prefix="treecmp-walk"
            ) as executor:
                walk_a = executor.submit(self.tree_walker.walk_tree, root_a)
                walk_b = executor.submit(self.tree_walker.walk_tree, root_b)
                return walk_a.result(), walk_b.result()
        return self.tree_walker.walk_tree(root_a), self.tree_walker.walk_tree(root_b)

    def compare_roots(self, root_a: str, root_b: str) -> CompareResults:
        """
        Compare two directory trees and return the differences.

        Both roots must be existing, readable directories: use
        ``treecmp.command.validate_root()`` to check user supplied paths.

        :param root_a: The first (left hand) directory to compare.
        :type root_a: ``str``
        :param root_b: The second (right hand) directory to compare.
        :type root_b: ``str``
        :returns: The comparison results in relative path order.
        :rtype: ``CompareResults``
        :raises TreecmpArgumentError: If either root is not a directory.
        """
        for root in (root_a, root_b):
            if not os.path.isdir(root):
                raise TreecmpArgumentError(f"Not a directory: {root}")

        _log_debug("Comparing %s to %s with options:\n%s", root_a, root_b, self.options)

        (tree_a, unreadable_a), (tree_b, unreadable_b) = self._walk_roots(
            root_a, root_b
        )

        all_paths = set(tree_a.keys()) | set(tree_b.keys())
        _log_debug(
            "Found %d distinct paths (%d in %s, %d in %s)",
            len(all_paths),
            len(tree_a),
            root_a,
            len(tree_b),
            root_b,
        )

        results = self.engine.compute_diff(
            root_a,
            root_b,
            all_paths,
            self.options,
            self._term_control,
            trees=(tree_a, tree_b),
        )
        results.unreadable = [(Location.FIRST, path) for path in unreadable_a] + [
            (Location.SECOND, path) for path in unreadable_b
        ]
        return results


def compare_trees(
    root_a: str, root_b: str, options: Optional[CompareOptions] = None
) -> Tuple[List[DifferenceRecord], int]:
    """
    Compare the directory trees at ``root_a`` and ``root_b``.

    :param root_a: The first directory to compare.
    :type root_a: ``str``
    :param root_b: The second directory to compare.
    :type root_b: ``str``
    :param options: Options to apply to the comparison.
    :type options: ``Optional[CompareOptions]``
    :returns: A tuple of the ordered difference records and their count.
    :rtype: ``Tuple[List[DifferenceRecord], int]``
    """
    return TreeComparer(options).compare_roots(root_a, root_b).as_tuple()
