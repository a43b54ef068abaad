# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.

"""Error kinds raised by the backup and restore operations.

Every error carries a human-readable message and an optional list of
remediation lines (valid targets, available artifacts, manual rollback
steps). The command line layer logs both and exits with ``exit_code``.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:
    from .runner import CommandResult


class OpsError(Exception):
    """Base class for all operational failures."""

    exit_code = 1

    def __init__(
        self, message: str, remediation: Iterable[str] | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.remediation: list[str] = list(remediation or [])


class RuntimeUnavailable(OpsError):
    """The container engine (or another required binary) is missing."""


class TargetNotFound(OpsError):
    """The volume or service does not exist."""

    def __init__(
        self, kind: str, identifier: str, candidates: Sequence[str]
    ) -> None:
        self.kind = kind
        self.identifier = identifier
        self.candidates = list(candidates)
        remediation = [f"Available {kind}s:"]
        if self.candidates:
            remediation += [f"  {name}" for name in self.candidates]
        else:
            remediation.append("  (none)")
        super().__init__(
            f"{kind.capitalize()} '{identifier}' not found", remediation
        )


class NotReady(OpsError):
    """The target did not become ready within the polling bound."""

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        remediation: Iterable[str] | None = None,
    ) -> None:
        super().__init__(message, remediation)
        self.attempts = attempts


class TargetBusy(OpsError):
    """Consumers hold the target and the operator declined to stop them."""

    def __init__(self, target: str, consumers: Sequence[str]) -> None:
        self.consumers = list(consumers)
        super().__init__(
            f"Cannot restore while containers are using {target}",
            [f"Stop them first: docker stop {' '.join(self.consumers)}"],
        )


class ArtifactNotFound(OpsError):
    """The requested backup or export file does not exist."""


class UnsupportedFormat(OpsError):
    """The artifact's extension does not map to a known decoder."""


class BackupFailed(OpsError):
    """A backup or export pipeline stage failed."""


class RestoreFailed(OpsError):
    """A restore or import step failed."""

    def __init__(
        self,
        message: str,
        remediation: Iterable[str] | None = None,
        rollback_artifact: Path | None = None,
    ) -> None:
        super().__init__(message, remediation)
        self.rollback_artifact = rollback_artifact


class InvalidParameter(OpsError):
    """An operator-supplied parameter is out of range."""


class ConfirmationDeclined(OpsError):
    """The operator declined a destructive step."""


class CommandFailed(OpsError):
    """An external command exited with a non-zero status."""

    def __init__(self, result: "CommandResult", command: str) -> None:
        self.result = result
        self.command = command
        detail = result.stderr.strip().splitlines()[-1:]
        message = (
            f"Command '{command}' failed with exit code {result.returncode}"
        )
        if detail:
            message += f": {detail[0]}"
        super().__init__(message)
