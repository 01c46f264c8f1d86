"""Exception hierarchy shared by backends, collaborators and the voice path."""

from __future__ import annotations


class AmbientHealthError(Exception):
    """Base class for every error raised by this package."""


class DeviceUnavailableError(AmbientHealthError):
    """A capture or output device could not be opened (absent or permission denied)."""


class TranscriptionError(AmbientHealthError):
    """The speech-to-text collaborator failed to produce a transcript."""


class SynthesisError(AmbientHealthError):
    """The text-to-speech collaborator failed to produce audio."""


class AudioDecodeError(AmbientHealthError):
    """Audio bytes could not be decoded into PCM samples."""


class HotkeyUnavailableError(AmbientHealthError):
    """No global hotkey facility is available on this system."""


class NotificationError(AmbientHealthError):
    """A notification channel failed to deliver an alert."""


class CollaboratorError(AmbientHealthError):
    """A collaborator service was unreachable or returned an unusable payload."""
