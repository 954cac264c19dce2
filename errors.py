"""
Exceptions raised by the room registry, the utterance pipeline and the
origin verification service.

Every error carries a stable ``code`` that is sent to clients, so the
front-end can branch on it without parsing messages.
"""

from enum import Enum
from typing import Optional


class RelayError(Exception):
    """Base exception for all relay errors."""

    code = "relay_error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


# ---------------------------------------------------------------------------
# Utterance pipeline
# ---------------------------------------------------------------------------


class UtteranceError(RelayError):
    """Error processing audio data"""

    code = "utterance_error"


class ValidationKind(str, Enum):
    TOO_LARGE = "too_large"
    EMPTY = "empty"


class ValidationError(UtteranceError):
    def __init__(self, kind: ValidationKind, message: Optional[str] = None):
        self.kind = kind
        self.code = f"validation_{kind.value}"
        super().__init__(message or ("Audio file too large" if kind is ValidationKind.TOO_LARGE else "Audio is empty"))


class TranscodeError(UtteranceError):
    """Audio conversion failed"""

    code = "transcode_error"


class DurationExceeded(UtteranceError):
    """Audio duration exceeds maximum limit"""

    code = "duration_exceeded"


class TranscriptionKind(str, Enum):
    FAILED = "failed"
    EMPTY_RESULT = "empty_result"


class TranscriptionError(UtteranceError):
    def __init__(self, kind: TranscriptionKind, message: Optional[str] = None):
        self.kind = kind
        self.code = f"transcription_{kind.value}"
        default = "Transcription failed" if kind is TranscriptionKind.FAILED else "Transcription returned empty text"
        super().__init__(message or default)


class LanguageError(UtteranceError):
    """Failure scoped to one target language of the fan-out."""

    def __init__(self, language: str, message: Optional[str] = None):
        self.language = language
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["language"] = self.language
        return data


class TranslationError(LanguageError):
    """Translation failed"""

    code = "translation_error"


class SynthesisError(LanguageError):
    """Speech synthesis failed"""

    code = "synthesis_error"


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------


class RoomError(RelayError):
    code = "room_error"


class RoomNotFound(RoomError):
    """Room not found"""

    code = "room_not_found"


class MembershipError(RoomError):
    """Not a member of this room"""

    code = "membership_error"


class RoomAllocationExhausted(RoomError):
    """Could not allocate a unique room code"""

    code = "room_allocation_exhausted"


# ---------------------------------------------------------------------------
# Origin verification
# ---------------------------------------------------------------------------


class VerificationReason(str, Enum):
    NONCE_REUSED = "nonce_reused"
    INVALID_VERIFICATION = "invalid_verification"
    MISSING_HEADERS = "missing_headers"
    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"


_VERIFICATION_MESSAGES = {
    VerificationReason.NONCE_REUSED: "Nonce has already been used",
    VerificationReason.INVALID_VERIFICATION: "Invalid verification hash",
    VerificationReason.MISSING_HEADERS: "Missing verification headers",
    VerificationReason.EXPIRED: "Verification request expired",
    VerificationReason.INVALID_SIGNATURE: "Invalid signature",
}


class VerificationError(RelayError):
    def __init__(self, reason: VerificationReason, message: Optional[str] = None):
        self.reason = reason
        self.code = reason.value
        super().__init__(message or _VERIFICATION_MESSAGES[reason])
