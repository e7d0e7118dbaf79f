# Copyright Red Hat
#
# treecmp/compare/__init__.py - Tree comparison package
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Directory tree comparison package.

Provides tree walking, difference classification and table rendering for
comparing two directory trees. The main entry points are ``TreeComparer``,
``compare_trees()`` and ``CompareOptions``.
"""
from .comparer import TreeComparer, compare_trees
from .difftypes import DiffKind, EntryKind, Location
from .engine import CompareEngine, CompareResults, DifferenceRecord
from .options import CompareOptions
from .table import DiffTable, printable

__all__ = [
    "CompareEngine",
    "CompareOptions",
    "CompareResults",
    "DiffKind",
    "DiffTable",
    "DifferenceRecord",
    "EntryKind",
    "Location",
    "TreeComparer",
    "compare_trees",
    "printable",
]
