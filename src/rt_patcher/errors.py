# errors.py
# Exception taxonomy. Every one of these is fatal to the run: the executor
# marks the current step Failed and halts. Nothing is retried.
# Terminated is a SystemExit so it also ends code that never calls run().

import shlex


class WizardError(Exception):
    """Base class for all wizard failures."""


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


class EnvironmentCheckError(WizardError):
    """Missing privilege, missing tool, unwritable workdir or missing files."""


# ---------------------------------------------------------------------------
# Downloads and integrity
# ---------------------------------------------------------------------------


class DownloadError(WizardError):
    """Raised when the artifact itself cannot be downloaded."""


class IntegrityError(WizardError):
    """Raised when a downloaded artifact cannot be verified. Always fatal."""


class ManifestUnavailableError(IntegrityError):
    """The checksum manifest could not be downloaded."""


class ChecksumMissingError(IntegrityError):
    """The manifest has no entry for the artifact's filename."""


class ChecksumMismatchError(IntegrityError):
    """The artifact's digest differs from the manifest entry."""


class ReleaseNotFoundError(WizardError):
    """No matching release is listed upstream."""


# ---------------------------------------------------------------------------
# Registry and state machine
# ---------------------------------------------------------------------------


class StepNotFoundError(WizardError):
    """A step was selected by a name that was never registered."""


class DuplicateNameError(WizardError):
    """A step name was registered twice."""


class InvalidTransitionError(WizardError):
    """A status change outside the step state machine was attempted."""


# ---------------------------------------------------------------------------
# External tools
# ---------------------------------------------------------------------------


class ExternalToolError(WizardError):
    """A delegated command exited with a nonzero status."""

    def __init__(self, argv: list[str], returncode: int) -> None:
        self.argv = argv
        self.returncode = returncode
        super().__init__(f"Command failed ({returncode}): {shlex.join(argv)}")


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


class Terminated(SystemExit):
    """SIGTERM arrived while the wizard held the terminal. Code is 128 + signal."""
