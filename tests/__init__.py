# Copyright Red Hat
#
# tests/__init__.py - Tree comparison test package
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
import logging
import os

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)


class MockArgs(object):
    debug = None
    verbose = 0
    version = False
    folder1 = None
    folder2 = None
    workers = None
    exclude_patterns = None
    use_magic_file_type = False
    output_format = "table"
    pretty = False
    color = "never"
    quiet = True


def have_root():
    """Return ``True`` if the test suite is running as the root user,
    and ``False`` otherwise.
    """
    return os.geteuid() == 0 and os.getegid() == 0
