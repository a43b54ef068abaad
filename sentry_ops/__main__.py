# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Allow running with python -m sentry_ops."""

from sentry_ops.cli import app

if __name__ == "__main__":
    app()
