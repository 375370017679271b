"""Exception taxonomy.

ConfigError is fatal at startup. Everything under JobError is folded into a
failed run history row and the job's fail counter; it never reaches the
process.
"""

from __future__ import annotations


class PromptloopError(Exception):
    """Base for all promptloop errors."""


class ConfigError(PromptloopError):
    """Required configuration is missing or invalid."""


class JobError(PromptloopError):
    """A single job run failed; recorded, not propagated."""


class ScheduleError(JobError):
    """Schedule descriptor cannot produce a next run time."""


class GenerationError(JobError):
    """Text-generation backend failed, timed out or returned nothing."""

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class DeliveryError(JobError):
    """Channel rejected a message or could not be reached."""

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class DecryptionError(DeliveryError):
    """Stored channel credential could not be decrypted."""
