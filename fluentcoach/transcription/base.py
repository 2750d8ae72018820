"""Abstract base class for transcription backends."""

from abc import ABC, abstractmethod
import logging

from ..errors import MissingCredential
from ..models.audio import AudioBlob

logger = logging.getLogger(__name__)


class AbstractTranscriber(ABC):
    """Exchanges one recorded blob for plain text.

    Implementations are interchangeable: the pipeline only depends on this
    interface, so a cloud, proxy or local recogniser can be swapped in.
    """

    service_name = "transcriber"

    @abstractmethod
    async def transcribe(self, blob: AudioBlob, api_key: str) -> str:
        """Transcribe ``blob`` and return its text.

        Args:
            blob: Finished recording, must be non-empty
            api_key: Provider credential

        Returns:
            Transcript text as reported by the provider

        Raises:
            ValueError: If the blob is empty
            MissingCredential: If no API key is given
            CredentialRejected: If the provider refuses the key
            UpstreamError: On any other non-success status, timeout or connection failure
            MalformedResponse: If a success response has no usable text
        """

    async def close(self) -> None:
        """Release any network resources held by the backend."""

    def check_preconditions(self, blob: AudioBlob, api_key: str) -> None:
        """Validate inputs before any network call is made."""
        if not api_key or not api_key.strip():
            raise MissingCredential()
        if blob is None or len(blob.data) == 0:
            raise ValueError("Cannot transcribe an empty recording")
