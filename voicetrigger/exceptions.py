"""Exceptions raised at the session boundaries."""


class VoiceTriggerError(RuntimeError):
    """Base class for recoverable listening session failures."""


class AcquisitionError(VoiceTriggerError):
    """The microphone could not be opened (denied, missing or busy)."""


class ConnectionFailure(VoiceTriggerError):
    """The remote transcription session failed to open, send, receive or close."""
