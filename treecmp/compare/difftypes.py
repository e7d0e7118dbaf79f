# Copyright Red Hat
#
# treecmp/compare/difftypes.py - Tree comparison difference types
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree comparison difference types
"""
from enum import Enum
import stat


class DiffKind(Enum):
    """
    Enum for the categories of difference between two trees.
    """

    ONLY_IN_FIRST = "only_in_first"
    ONLY_IN_SECOND = "only_in_second"
    TYPE_DIFFERS = "type_differs"
    SIZE_DIFFERS = "size_differs"
    CONTENT_DIFFERS = "content_differs"
    PERMISSION_ERROR = "permission_error"


class Location(Enum):
    """
    Enum for the side(s) of the comparison a difference pertains to.
    """

    FIRST = "first"
    SECOND = "second"
    BOTH = "both"


class EntryKind(Enum):
    """
    Enum for the kinds of file system entry discovered while walking.
    """

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"

    @classmethod
    def from_mode(cls, mode: int) -> "EntryKind":
        """
        Classify an ``st_mode`` value from ``os.lstat()``.

        Symbolic links are always classified as ``SYMLINK`` regardless
        of the type of their target.

        :param mode: The mode value to classify.
        :type mode: ``int``
        :returns: The entry kind for ``mode``.
        :rtype: ``EntryKind``
        """
        if stat.S_ISLNK(mode):
            return cls.SYMLINK
        if stat.S_ISDIR(mode):
            return cls.DIRECTORY
        if stat.S_ISREG(mode):
            return cls.FILE
        return cls.OTHER
