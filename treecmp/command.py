# Copyright Red Hat
#
# treecmp/command.py - Tree comparison command interface
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``treecmp.command`` module provides both the treecmp command line
interface infrastructure, and a simple procedural interface for validating
the directories to compare.

The procedural interface is used by the ``treecmp`` command line tool,
and may be used by application programs, or interactively in the
Python shell.
"""
from argparse import ArgumentParser
from typing import Callable, Optional
from os.path import basename
import logging
import sys
import os

from treecmp import (
    TREECMP_DEBUG_ALL,
    TREECMP_DEBUG_COMMAND,
    TREECMP_DEBUG_ENGINE,
    TREECMP_DEBUG_WALK,
    TREECMP_SUBSYSTEM_COMMAND,
    ProgressAwareHandler,
    SubsystemFilter,
    TreecmpPathError,
    TreecmpPlatformError,
    __version__,
    detect_platform,
    set_debug_mask,
)
from treecmp.compare import CompareOptions, DiffTable, TreeComparer, printable

#: Output formats accepted by ``--output-format``
OUTPUT_FORMATS = ["table", "json", "paths"]

#: Labels used to identify the two directories in messages and prompts
FOLDER1 = "FOLDER1"
FOLDER2 = "FOLDER2"

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREECMP_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None


def validate_root(label: str, path: str) -> str:
    """
    Validate and canonicalize a directory to compare.

    :param label: The label naming the directory in error messages, for
                  example "FOLDER1".
    :type label: ``str``
    :param path: The path to validate. A leading "~" is expanded.
    :type path: ``str``
    :returns: The canonical absolute path.
    :rtype: ``str``
    :raises TreecmpPathError: If the path is empty, does not exist, is not
                              a directory or cannot be read.
    """
    if not path or not path.strip():
        raise TreecmpPathError(f"{label} path must not be empty")

    canonical = os.path.realpath(os.path.expanduser(path.strip()))

    if not os.path.exists(canonical):
        raise TreecmpPathError(f"{label} '{path}' does not exist")
    if not os.path.isdir(canonical):
        raise TreecmpPathError(f"{label} '{path}' is not a directory")
    if not os.access(canonical, os.R_OK | os.X_OK):
        raise TreecmpPathError(f"{label} '{path}' is not readable")

    _log_debug_command("Validated %s as %s", label, canonical)
    return canonical


def acquire_root(
    label: str,
    path: Optional[str] = None,
    input_fn: Optional[Callable[[str], str]] = None,
) -> str:
    """
    Return a validated directory for ``label``. If ``path`` is not given
    the user is prompted for one until a valid directory is entered.

    :param label: The label naming the directory, for example "FOLDER1".
    :type label: ``str``
    :param path: The path given on the command line, if any.
    :type path: ``Optional[str]``
    :param input_fn: The function used to read a path from the user.
                     Defaults to ``input()``.
    :type input_fn: ``Optional[Callable[[str], str]]``
    :returns: The canonical absolute path.
    :rtype: ``str``
    :raises TreecmpPathError: If ``path`` is given and is not a valid
                              directory, or if input ends before a valid
                              path is entered.
    """
    if path is not None:
        return validate_root(label, path)

    input_fn = input_fn or input
    while True:
        try:
            entered = input_fn(f"Enter path for {label}: ")
        except EOFError as err:
            raise TreecmpPathError(f"No path given for {label}") from err
        try:
            return validate_root(label, entered)
        except TreecmpPathError as err:
            _log_error("%s", err)


def _start_cmd(cmd_args):
    """
    Start comparison command handler.

    Compare two directory trees and print the differences.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    output_format = cmd_args.output_format
    pretty = cmd_args.pretty
    color = cmd_args.color

    if pretty and output_format != "json":
        _log_error("Option --pretty only supported with --output-format=json")
        return 1

    try:
        options = CompareOptions.from_cmd_args(cmd_args)
    except ValueError as err:
        _log_error("Invalid comparison options: %s", err)
        return 1

    try:
        root_a = acquire_root(FOLDER1, cmd_args.folder1)
        root_b = acquire_root(FOLDER2, cmd_args.folder2)
    except TreecmpPathError as err:
        _log_error("%s", err)
        return 1

    _log_info("Comparing %s to %s", root_a, root_b)
    comparer = TreeComparer(options, color=color)
    results = comparer.compare_roots(root_a, root_b)

    if output_format == "json":
        print(results.json(pretty=pretty))
    elif output_format == "paths":
        if results.count:
            print("\n".join(printable(path) for path in results.paths()))
    else:
        print(DiffTable(results, color=color).render())
    return 0


def _help_cmd(cmd_args):
    """
    Help command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    cmd_args.print_help()
    return 0


def setup_logging(cmd_args):
    """
    Set up treecmp logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    treecmp_log = logging.getLogger("treecmp")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    treecmp_log.setLevel(level)
    if treecmp_log.hasHandlers():
        treecmp_log.handlers.clear()

    # Main console handler
    _CONSOLE_HANDLER = ProgressAwareHandler()

    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(SubsystemFilter("treecmp"))

    treecmp_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down treecmp logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "walk": TREECMP_DEBUG_WALK,
        "engine": TREECMP_DEBUG_ENGINE,
        "command": TREECMP_DEBUG_COMMAND,
        "all": TREECMP_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_start_args(parser):
    parser.add_argument(
        "folder1",
        metavar="FOLDER1",
        type=str,
        nargs="?",
        help="The first directory to compare (prompted for if omitted)",
    )
    parser.add_argument(
        "folder2",
        metavar="FOLDER2",
        type=str,
        nargs="?",
        help="The second directory to compare (prompted for if omitted)",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        dest="workers",
        metavar="N",
        type=int,
        default=None,
        help="Number of worker threads to use for comparison (default: 1)",
    )
    parser.add_argument(
        "-e",
        "--exclude",
        dest="exclude_patterns",
        metavar="PATTERN",
        action="append",
        help="Exclude paths matching PATTERN (may be repeated)",
    )
    parser.add_argument(
        "-f",
        "--file-types",
        dest="use_magic_file_type",
        action="store_true",
        help="Generate file type information using libmagic",
    )
    parser.add_argument(
        "-o",
        "--output-format",
        choices=OUTPUT_FORMATS,
        default="table",
        help="Output format for comparison results (default: table)",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty-print JSON output",
    )
    parser.add_argument(
        "--color",
        choices=["auto", "always", "never"],
        default="auto",
        help="Control use of color in table output",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Do not output progress or status updates",
    )


START_CMD = "start"
HELP_CMD = "help"


def main(args):
    """
    Main entry point for treecmp.
    """
    parser = ArgumentParser(
        description="Compare two directory trees", prog=basename(args[0])
    )

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable (walk,engine,command,all)",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of treecmp",
        version=__version__,
    )
    # Subparser for command
    cmd_subparser = parser.add_subparsers(dest="command", help="Command")

    start_parser = cmd_subparser.add_parser(
        START_CMD, help="Compare two directory trees"
    )
    _add_start_args(start_parser)
    start_parser.set_defaults(func=_start_cmd)

    help_parser = cmd_subparser.add_parser(HELP_CMD, help="Show this help message")
    help_parser.set_defaults(func=_help_cmd, print_help=parser.print_help)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err, file=sys.stderr)
        parser.print_help(file=sys.stderr)
        return status

    setup_logging(cmd_args)

    try:
        platform = detect_platform()
    except TreecmpPlatformError as err:
        _log_error("%s", err)
        shutdown_logging()
        return status

    _log_debug_command("Parsed %s on %s", " ".join(args[1:]), platform.name)

    if "func" not in cmd_args:
        parser.print_help()
        return status

    if cmd_args.debug:
        status = cmd_args.func(cmd_args)
    else:
        try:
            status = cmd_args.func(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def run():
    """
    Console script entry point for treecmp.
    """
    sys.exit(main(sys.argv))


# vim: set et ts=4 sw=4 :
