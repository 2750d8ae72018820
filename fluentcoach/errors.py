"""Exception hierarchy shared by the capture, provider and storage layers."""

from typing import Optional


class PracticeError(Exception):
    """Base class for every recoverable FluentCoach failure."""


class MissingCredential(PracticeError):
    """No provider API key is configured."""

    def __init__(self, message: str = "No API key configured - run `fluentcoach configure` first"):
        super().__init__(message)


class InvalidCredential(PracticeError):
    """API key rejected by the local format check before it was saved."""


class InputTooShort(PracticeError):
    """Transcript too short to be worth analyzing."""


class PermissionDenied(PracticeError):
    """Microphone access refused or no input device available."""


class CaptureBusy(PracticeError):
    """A recording is already in progress on this capture instance."""


class UpstreamError(PracticeError):
    """Provider answered with a non-success status, timed out or was unreachable."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.status}: {self.message}"


class CredentialRejected(UpstreamError):
    """Provider refused the API key (HTTP 401)."""

    def __init__(self, message: str = "API key rejected by provider"):
        super().__init__(message, status=401)


class MalformedResponse(PracticeError):
    """Provider response does not match the expected shape."""


class PersistenceFailure(PracticeError):
    """Reading or writing local storage failed."""


class SpeechUnavailable(PracticeError):
    """No speech engine could be started, or it failed while speaking."""
