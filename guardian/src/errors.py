"""
Error taxonomy for the sync engine.

- AuthError: credential acquisition failed. Fatal to starting the scheduler.
- StageSoftError: the API answered with a non-zero ``status``.
- StageHardError: transport, timeout, HTTP or decoding failure.
- MappingError: one record could not be mapped into tree writes.

Soft and hard errors are caught at the stage boundary in the pipeline;
mapping errors are caught per entity.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations


class GuardianError(Exception):
    """Base class for all sync engine errors."""


class AuthError(GuardianError):
    """Authentication against the SolarGuardian API failed."""


class StageSoftError(GuardianError):
    """The API reported an application-level failure (``status != 0``).

    Args:
        endpoint: Endpoint path that was called.
        status: The ``status`` value from the response body.
        info: The API-provided error message.
    """

    def __init__(self, endpoint: str, status: object, info: str) -> None:
        super().__init__(f"{endpoint} returned status={status}: {info}")
        self.endpoint = endpoint
        self.status = status
        self.info = info


class StageHardError(GuardianError):
    """The request failed below the application level."""

    def __init__(self, endpoint: str, reason: str) -> None:
        super().__init__(f"{endpoint} failed: {reason}")
        self.endpoint = endpoint
        self.reason = reason


class MappingError(GuardianError):
    """A single API record could not be converted into tree writes."""

    def __init__(self, kind: str, reason: str) -> None:
        super().__init__(f"cannot map {kind} record: {reason}")
        self.kind = kind
        self.reason = reason
