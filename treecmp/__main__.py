# Copyright Red Hat
#
# treecmp/__main__.py - Tree comparison module entry point
#
# This file is part of the treecmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Allow ``python -m treecmp``.
"""
from treecmp.command import run

if __name__ == "__main__":
    run()
