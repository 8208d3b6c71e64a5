# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
shipwright: release builds for Rust binaries across a platform matrix.
"""

__version__ = "0.1.0"
