# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Backup, restore, export and import tooling for Sentry self-hosted."""

from ._version import __version__

__all__ = ["__version__"]
