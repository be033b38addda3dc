"""
Relay error taxonomy.

Fatal to the session:
- ModelConnectionError
- TransportError

Recovered locally (logged, session continues):
- DecodeError
- PlaybackError
- CaptureError
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""


class ModelConnectionError(RelayError):
    """
    Raised when the model stream cannot be opened or its setup handshake
    fails.

    Surfaced to the client as a single `error` control message; no session
    record is created.
    """


class DecodeError(RelayError):
    """
    Raised when an audio chunk cannot be converted.

    The chunk is dropped and the session continues.
    """


class TransportError(RelayError):
    """
    Raised when the client socket fails.

    Triggers session and model-stream teardown.
    """


class PlaybackError(RelayError):
    """
    Raised when the output device rejects a playback start.

    The playing flag is cleared and the next flush is retried.
    """


class CaptureError(RelayError):
    """
    Raised when the capture device cannot be opened.

    The recording is abandoned and the client returns to idle.
    """
