# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Version information for sentry-ops."""

__version__ = "0.3.0"
