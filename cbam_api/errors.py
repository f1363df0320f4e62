"""
errors.py – Failure types raised by the service layer.

Routes in main.py translate each of these into an HTTP status; nothing here
is fatal to the process.
"""
from __future__ import annotations


class AuthError(Exception):
    """Credentials rejected by the identity provider, or failed local checks."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnauthenticatedError(AuthError):
    """An operation that needs a signed-in user was attempted without one."""

    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class ServiceUnavailableError(RuntimeError):
    """Identity or data service unreachable, or not initialised yet."""


class PersistenceError(RuntimeError):
    """A report could not be saved."""


class ExportInProgressError(RuntimeError):
    """An export is already running for this calculator."""
