"""
Exceptions raised by the reMarkable cloud client.

Lookups that miss (unknown id, unresolvable path) are not errors: they
return ``None``. Everything below is raised for real failures.
"""

from typing import Optional


class RemarkableError(Exception):
    """Base class for all reMarkable cloud errors.

    ``phase`` is set by the upload protocol to the phase the error
    surfaced in (``"requesting"``, ``"uploading"`` or ``"confirming"``).
    """

    def __init__(self, message: str, phase: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.phase = phase

    def __str__(self) -> str:
        if self.phase:
            return f"{self.message} (during {self.phase})"
        return self.message


class AuthenticationError(RemarkableError):
    """No usable device/user token, or the token exchange was rejected."""


class TransportError(RemarkableError):
    """The HTTP request could not be completed."""


class RemoteProtocolError(RemarkableError):
    """The remote answered, but not with what the protocol expects."""


class EncodingError(RemarkableError, ValueError):
    """Malformed JSON, or a string that is not a valid identifier."""


class InvalidArchive(RemarkableError):
    """The archive has no ``<uuid>.content`` entry, or it is not a zip."""
