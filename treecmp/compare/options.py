# Copyright Red Hat
#
# treecmp/compare/options.py - Tree comparison options
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree comparison options.
"""
from dataclasses import dataclass, field, fields
from typing import Tuple, Union
from argparse import Namespace
import logging

_log = logging.getLogger(__name__)

_log_debug = _log.debug

#: Default read size for content comparison
DEFAULT_CHUNK_SIZE = 2**16


@dataclass(frozen=True)
class CompareOptions:
    """
    Tree comparison options.
    """

    #: Number of worker threads used to classify paths
    workers: int = 1
    #: Read size in bytes for byte-for-byte content comparison
    chunk_size: int = DEFAULT_CHUNK_SIZE
    #: Path patterns to exclude from both trees (glob notation)
    exclude_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: Annotate differing files with a MIME type using magic
    use_magic_file_type: bool = False
    #: Do not output progress or status updates
    quiet: bool = False

    def __post_init__(self):
        if not isinstance(self.workers, int) or self.workers < 1:
            raise ValueError(f"workers must be a positive integer: {self.workers}")
        if not isinstance(self.chunk_size, int) or self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be a positive integer: {self.chunk_size}")
        if isinstance(self.exclude_patterns, str):
            raise ValueError("exclude_patterns must be a sequence of patterns")
        if not isinstance(self.exclude_patterns, tuple):
            object.__setattr__(self, "exclude_patterns", tuple(self.exclude_patterns))

    def __str__(self):
        """
        Return a human readable string representation of this
        ``CompareOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        items = [
            (key, val) if not isinstance(val, tuple) else (key, " ".join(val))
            for key, val in self.__dict__.items()
        ]
        return "\n".join(f"{key}={val}" for key, val in items)

    @classmethod
    def from_cmd_args(cls, cmd_args: Namespace) -> "CompareOptions":
        """
        Initialise CompareOptions from command line arguments.

        Arguments that are absent from ``cmd_args`` or set to ``None`` take
        the default value.

        :param cmd_args: The command line arguments.
        :type cmd_args: ``Namespace``
        :returns: A new ``CompareOptions`` instance
        :rtype: ``CompareOptions``
        """

        def get_value(name: str) -> Union[bool, int, Tuple[str, ...]]:
            attr = getattr(cmd_args, name)
            if isinstance(attr, list):
                return tuple(attr)
            return attr

        field_names = {f.name for f in fields(cls)}
        kwargs = {
            name: get_value(name)
            for name in field_names
            if getattr(cmd_args, name, None) is not None
        }
        options = cls(**kwargs)
        _log_debug("Initialised CompareOptions from arguments: %s", repr(options))
        return options
