from typing import List, Optional


class LabTrackError(Exception):
    """Base error for the lab client."""


class TransportError(LabTrackError):
    """Network failure or HTTP error status talking to the backend."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EnvelopeError(LabTrackError):
    """The backend answered, but not with a success envelope."""

    def __init__(self, message: str, payload=None):
        super().__init__(message)
        self.payload = payload


class InvalidTransitionError(LabTrackError):
    pass


class TransitionError(LabTrackError):
    """A status transition was attempted and rolled back."""


class FileNotReadyError(LabTrackError):
    def __init__(self, path: str, attempts: int):
        super().__init__(f"File {path} never reported a positive size after {attempts} checks")
        self.path = path
        self.attempts = attempts


class MissingIdentifierError(LabTrackError):
    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []
