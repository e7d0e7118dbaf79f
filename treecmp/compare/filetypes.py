# Copyright Red Hat
#
# treecmp/compare/filetypes.py - Tree comparison file types
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File type information support.
"""
from pathlib import Path
import mimetypes
import logging
import magic

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_warn = _log.warning

#: MIME type reported when detection fails
UNKNOWN_MIME_TYPE = "application/octet-stream"


class FileTypeDetector:
    """
    Detect file MIME types using ``magic`` from python3-file-magic, or by
    file name extension when magic detection is not requested.
    """

    def detect_file_type(self, file_path: Path, use_magic: bool = False) -> str:
        """
        Detect the MIME type of ``file_path``, optionally reading file
        content with libmagic.

        :param file_path: The path to the file to inspect.
        :type file_path: ``Path``
        :param use_magic: Inspect file content using libmagic.
        :type use_magic: ``bool``
        :returns: The MIME type, or ``UNKNOWN_MIME_TYPE`` if it cannot be
                  determined.
        :rtype: ``str``
        """
        if not use_magic:
            return self._guess_file_type(file_path)

        # Some libmagic bindings do not define magic.error
        if hasattr(magic, "error"):
            magic_errors = (magic.error, OSError, ValueError)
        else:
            magic_errors = (OSError, ValueError)

        try:
            fm = magic.detect_from_filename(str(file_path))
        except magic_errors as err:
            _log_warn("Error detecting file type for %s: %s", str(file_path), err)
            return UNKNOWN_MIME_TYPE

        _log_debug("Detected type %s (%s) for %s", fm.mime_type, fm.name, file_path)
        return fm.mime_type or UNKNOWN_MIME_TYPE

    @staticmethod
    def _guess_file_type(file_path: Path) -> str:
        """
        Guess a MIME type from the file name extension without reading
        the file.
        """
        mime_type, _encoding = mimetypes.guess_type(file_path.name)
        if not mime_type:
            return UNKNOWN_MIME_TYPE
        _log_debug("Guessed type %s for %s", mime_type, file_path)
        return mime_type
