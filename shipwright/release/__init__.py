# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release pipeline for shipwright.

Input validation, matrix resolution, cross-compilation provisioning,
building, packaging, checksums and install scripts. Each stage lives in its
own subpackage; shipwright.release.orchestrator wires them together per
platform lane.
"""
