"""Exception hierarchy shared by the session, data and playback layers."""
from __future__ import annotations

from typing import Optional


class TubedeckError(Exception):
    """Base class for errors that carry a user-facing message."""

    @property
    def message(self) -> str:
        return str(self) or self.__class__.__name__


class NetworkError(TubedeckError):
    """A transport-level failure; retrying later may succeed."""


class TransientError(NetworkError):
    """A token refresh failed for a transient reason and will be retried."""


class ProviderError(TubedeckError):
    """The identity or data provider rejected a request."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class AuthDenied(TubedeckError):
    """The user declined the device authorization request."""


class AuthExpired(TubedeckError):
    """The device code expired before the user approved it."""


class ReauthRequired(TubedeckError):
    """The stored refresh token is unusable; a new device flow is needed."""


class SpawnError(TubedeckError):
    """The external player or resolver could not be launched."""


class PersistenceError(TubedeckError):
    """Reading or writing local state failed."""


class NotFound(PersistenceError):
    """No persisted record exists yet."""


class ConfigError(TubedeckError):
    """The configuration does not allow the application to run."""


__all__ = [
    "AuthDenied",
    "AuthExpired",
    "ConfigError",
    "NetworkError",
    "NotFound",
    "PersistenceError",
    "ProviderError",
    "ReauthRequired",
    "SpawnError",
    "TransientError",
    "TubedeckError",
]
