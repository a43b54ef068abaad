# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Configuration for the backup and restore operations."""

from ._common import ENV_PREFIX, get_project_dir, load_dot_env
from .settings import Settings

__all__ = [
    "ENV_PREFIX",
    "Settings",
    "get_project_dir",
    "load_dot_env",
]
