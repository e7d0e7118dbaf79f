# Copyright Red Hat
#
# treecmp/_treecmp.py - Tree comparison global definitions
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level treecmp package.
"""
from typing import Optional, TextIO, TYPE_CHECKING
from dataclasses import dataclass
import logging
import weakref
import sys
import os

if TYPE_CHECKING:
    from .progress import ProgressBase

_log = logging.getLogger("treecmp")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Treecmp debugging subsystem mask
TREECMP_DEBUG_WALK = 1
TREECMP_DEBUG_ENGINE = 2
TREECMP_DEBUG_COMMAND = 4
TREECMP_DEBUG_ALL = TREECMP_DEBUG_WALK | TREECMP_DEBUG_ENGINE | TREECMP_DEBUG_COMMAND

# Treecmp debugging subsystem names
TREECMP_SUBSYSTEM_WALK = "treecmp.walk"
TREECMP_SUBSYSTEM_ENGINE = "treecmp.engine"
TREECMP_SUBSYSTEM_COMMAND = "treecmp.command"

_DEBUG_MASK_TO_SUBSYSTEM = {
    TREECMP_DEBUG_WALK: TREECMP_SUBSYSTEM_WALK,
    TREECMP_DEBUG_ENGINE: TREECMP_SUBSYSTEM_ENGINE,
    TREECMP_DEBUG_COMMAND: TREECMP_SUBSYSTEM_COMMAND,
}

# Set of debug subsystem names currently enabled
_debug_subsystems = set()

# Progress instances that should be told about interleaved log output
_active_progress: weakref.WeakSet = weakref.WeakSet()

#: Platforms where terminal control (curses) and POSIX permissions work.
_UNSUPPORTED_PLATFORMS = ("win32", "cygwin", "emscripten", "wasi")


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``treecmp`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in _debug_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``treecmp`` package.

    :param mask: the logical OR of the ``TREECMP_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > TREECMP_DEBUG_ALL:
        raise ValueError(f"Invalid treecmp debug mask: {mask}")

    enabled_subsystems = [
        name for flag, name in _DEBUG_MASK_TO_SUBSYSTEM.items() if mask & flag
    ]

    treecmp_log = logging.getLogger("treecmp")
    for handler in treecmp_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def register_progress(progress: "ProgressBase"):
    """Register a progress instance for log coordination."""
    _active_progress.add(progress)
    progress.registered = True


def unregister_progress(progress: "ProgressBase"):
    """Unregister a progress instance."""
    _active_progress.discard(progress)
    progress.registered = False


def notify_log_output(stream: TextIO):
    """
    Notify progress instances that log output occurred on stream.

    :param stream: The stream that received output.
    :type stream: ``TextIO``
    """
    if stream not in (sys.stdout, sys.stderr):
        return
    for progress in list(_active_progress):
        progress.reset_position()


class ProgressAwareHandler(logging.StreamHandler):
    """
    A logging handler that coordinates with active Progress instances.

    After emitting a log record, notifies any Progress instances writing
    to the same stream so they can avoid erasing the log message.
    """

    def __init__(self, stream: Optional[TextIO] = None, **kwargs):
        super().__init__(stream=stream or sys.stderr, **kwargs)

    def emit(self, record):
        try:
            msg = self.format(record)
            self.stream.write(msg + "\n")
            self.stream.flush()
            notify_log_output(self.stream)
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)


#
# Treecmp exception types
#


class TreecmpError(Exception):
    """
    Base class for tree comparison errors.
    """


class TreecmpSystemError(TreecmpError):
    """
    An error when calling the operating system.
    """


class TreecmpPathError(TreecmpError):
    """
    An invalid comparison root was supplied: for e.g. a path that does
    not exist, is not a directory, or cannot be read.
    """


class TreecmpPlatformError(TreecmpError):
    """
    The current platform is not supported.
    """


class TreecmpArgumentError(TreecmpError):
    """
    An invalid argument was passed to a treecmp API call.
    """


@dataclass(frozen=True)
class PlatformInfo:
    """
    Immutable description of the platform treecmp is running on.
    """

    #: The value of ``sys.platform``
    name: str
    #: The native path separator
    sep: str


def detect_platform(platform: Optional[str] = None) -> PlatformInfo:
    """
    Detect the running platform and return a ``PlatformInfo`` value.

    :param platform: Override the platform name (defaults to
                     ``sys.platform``).
    :type platform: ``Optional[str]``
    :returns: A description of the detected platform.
    :rtype: ``PlatformInfo``
    :raises TreecmpPlatformError: If the platform is not supported.
    """
    name = platform or sys.platform
    if name.startswith(_UNSUPPORTED_PLATFORMS):
        raise TreecmpPlatformError(f"Unsupported platform: {name}")
    info = PlatformInfo(name=name, sep=os.sep)
    _log_debug("Detected platform: %s", info)
    return info


__all__ = [
    "TREECMP_DEBUG_WALK",
    "TREECMP_DEBUG_ENGINE",
    "TREECMP_DEBUG_COMMAND",
    "TREECMP_DEBUG_ALL",
    "TREECMP_SUBSYSTEM_WALK",
    "TREECMP_SUBSYSTEM_ENGINE",
    "TREECMP_SUBSYSTEM_COMMAND",
    # Debug logging
    "SubsystemFilter",
    "set_debug_mask",
    "get_debug_mask",
    # Progress log callbacks
    "register_progress",
    "unregister_progress",
    "notify_log_output",
    "ProgressAwareHandler",
    "TreecmpError",
    "TreecmpSystemError",
    "TreecmpPathError",
    "TreecmpPlatformError",
    "TreecmpArgumentError",
    "PlatformInfo",
    "detect_platform",
]
