"""Exceptions raised by the mediasoup package."""

from __future__ import annotations


class MediasoupError(Exception):
    """Base class of every error raised by this package."""


class MediasoupTypeError(MediasoupError, TypeError):
    """A request was rejected because of a wrong argument type or value."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class _NamedError(MediasoupError):
    """Error whose text is prefixed with its own class name."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def name(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return f"{self.name}:{self.message}"


class UnsupportedError(_NamedError):
    """Something is not supported."""


class InvalidStateError(_NamedError):
    """A method was called while the object is in an invalid state."""