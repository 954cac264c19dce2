"""
Per-utterance transcription, translation and synthesis pipeline.

One call to ``UtterancePipeline.process`` walks a single utterance through

    RECEIVED -> VALIDATED -> TRANSCODED -> DURATION_CHECKED -> TRANSCRIBED
             -> FANNED_OUT -> DELIVERED

or stops in FAILED. Temp files are released on every exit path.

Every external call is an await point where joins, leaves and other
utterances interleave, so room membership is read again from the backend
right before it is used: recipients are partitioned after transcription,
and each delivery re-checks that the target is still in the room. Members
who left in the meantime are skipped without reporting an error.
"""

import asyncio
import base64
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from starlette.concurrency import run_in_threadpool

from artifacts import ArtifactScope, ephemeral_artifacts
from backend import RoomBackend, Session
from connections import ConnectionManager
from constants import MAX_AUDIO_DURATION, MAX_FILE_SIZE, TEMP_DIR
from errors import (
    DurationExceeded,
    LanguageError,
    RelayError,
    SynthesisError,
    TranslationError,
    UtteranceError,
    ValidationError,
    ValidationKind,
)
from logging_config import get_logger
from schemas.messages import ErrorMessage, TranscriptMessage, TranslatedAudioMessage
from services.base import AudioTranscoder, SpeechSynthesizer, SpeechToText, Translator

logger = get_logger(__name__)


class PipelineState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    TRANSCODED = "transcoded"
    DURATION_CHECKED = "duration_checked"
    TRANSCRIBED = "transcribed"
    FANNED_OUT = "fanned_out"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass
class LanguageOutcome:
    """Translation and speech for one target language, or why it failed."""

    language: str
    text: Optional[str] = None
    audio: Optional[bytes] = None
    error: Optional[LanguageError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def partition_recipients(sender_language: str, members: List[Session]) -> Tuple[List[Session], List[str]]:
    """Split recipients into same-language members and distinct other languages.

    Languages keep first-seen order and appear once however many members
    speak them.
    """
    same_language = []
    target_languages: Dict[str, None] = {}
    for member in members:
        if member.language == sender_language:
            same_language.append(member)
        else:
            target_languages.setdefault(member.language, None)
    return same_language, list(target_languages)


class UtterancePipeline:
    def __init__(
        self,
        backend: RoomBackend,
        notifier: ConnectionManager,
        transcoder: AudioTranscoder,
        transcriber: SpeechToText,
        translator: Translator,
        synthesizer: SpeechSynthesizer,
        temp_dir: Union[str, Path] = TEMP_DIR,
        max_file_size: int = MAX_FILE_SIZE,
        max_duration: float = MAX_AUDIO_DURATION,
    ):
        self.backend = backend
        self.notifier = notifier
        self.transcoder = transcoder
        self.transcriber = transcriber
        self.translator = translator
        self.synthesizer = synthesizer
        self.temp_dir = Path(temp_dir)
        self.max_file_size = max_file_size
        self.max_duration = max_duration

    async def process(self, room_code: str, session_id: str, audio: bytes) -> PipelineState:
        """Run one utterance end to end. Never raises; failures go to the sender."""
        try:
            return await self.run(room_code, session_id, audio)
        except UtteranceError as e:
            logger.info(f"Utterance from {session_id} in room {room_code} failed: {e.code}: {e.message}")
            await self._report(room_code, session_id, e)
        except Exception as e:
            logger.error(f"Unexpected error processing audio from {session_id} in room {room_code}: {e}", exc_info=True)
            await self._report(room_code, session_id, UtteranceError())
        return PipelineState.FAILED

    async def run(self, room_code: str, session_id: str, audio: bytes) -> PipelineState:
        """Run the pipeline, raising ``UtteranceError`` on the first failing step."""
        state = PipelineState.RECEIVED
        logger.debug(f"Received utterance from {session_id} in room {room_code}: {len(audio)} bytes")

        sender = await self._validate(room_code, session_id, audio)
        state = self._advance(state, PipelineState.VALIDATED, session_id)

        with ephemeral_artifacts(self.temp_dir) as artifacts:
            wav_path = await self._persist_and_transcode(artifacts, audio)
            state = self._advance(state, PipelineState.TRANSCODED, session_id)

            duration = await self.transcoder.get_duration(wav_path)
            logger.debug(f"Audio duration for {session_id}: {duration:.2f}s")
            if duration > self.max_duration:
                raise DurationExceeded()
            state = self._advance(state, PipelineState.DURATION_CHECKED, session_id)

            transcript = await self.transcriber.transcribe(wav_path, sender.language)
            state = self._advance(state, PipelineState.TRANSCRIBED, session_id)

        await self._deliver(
            room_code,
            session_id,
            TranscriptMessage(username=sender.display_name, text=transcript, language=sender.language),
        )

        recipients = self.backend.members_except(room_code, session_id)
        same_language, target_languages = partition_recipients(sender.language, recipients)
        logger.debug(
            f"Fan-out for {session_id}: {len(same_language)} same-language members, "
            f"target languages {target_languages}"
        )

        if same_language:
            await self._fan_out_same_language(room_code, sender, transcript)

        outcomes = await self.translate_all(transcript, sender.language, target_languages)
        state = self._advance(state, PipelineState.FANNED_OUT, session_id)

        for outcome in outcomes.values():
            await self._deliver_outcome(room_code, sender, outcome)

        return self._advance(state, PipelineState.DELIVERED, session_id)

    async def translate_all(self, transcript: str, source_language: str, target_languages: List[str]) -> Dict[str, LanguageOutcome]:
        """Translate and synthesize once per distinct target language."""
        results = await asyncio.gather(
            *(self._translate_one(transcript, source_language, language) for language in target_languages)
        )
        return {outcome.language: outcome for outcome in results}

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _validate(self, room_code: str, session_id: str, audio: bytes) -> Session:
        if len(audio) > self.max_file_size:
            raise ValidationError(ValidationKind.TOO_LARGE)
        if not audio:
            raise ValidationError(ValidationKind.EMPTY)
        if not self.backend.room_exists(room_code):
            raise ValidationError(ValidationKind.EMPTY, "Room not found")
        sender = self.backend.get_member(room_code, session_id)
        if sender is None:
            raise ValidationError(ValidationKind.EMPTY, "Not a member of this room")
        return sender

    async def _persist_and_transcode(self, artifacts: ArtifactScope, audio: bytes) -> Path:
        raw_path = artifacts.new_path(".mp4")
        wav_path = artifacts.new_path(".wav")
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        await run_in_threadpool(raw_path.write_bytes, audio)
        logger.debug(f"Wrote raw audio to {raw_path} ({len(audio)} bytes)")
        return await self.transcoder.transcode(raw_path, wav_path)

    async def _fan_out_same_language(self, room_code: str, sender: Session, transcript: str) -> None:
        try:
            audio = await self.synthesizer.synthesize(transcript, sender.language)
        except SynthesisError as e:
            await self._report(room_code, sender.session_id, e)
            return
        except Exception as e:
            logger.error(f"Unexpected error synthesizing {sender.language} for {sender.session_id}: {e}", exc_info=True)
            await self._report(room_code, sender.session_id, SynthesisError(sender.language))
            return

        message = TranslatedAudioMessage(
            username=sender.display_name,
            text=transcript,
            audio=base64.b64encode(audio).decode("ascii"),
            language=sender.language,
            is_translation=False,
        )
        for member in self.backend.members_speaking(room_code, sender.language, exclude=sender.session_id):
            await self._deliver(room_code, member.session_id, message)

    async def _translate_one(self, transcript: str, source_language: str, target_language: str) -> LanguageOutcome:
        # any failure stays scoped to target_language
        try:
            text = await self.translator.translate(transcript, source_language, target_language)
        except TranslationError as e:
            return LanguageOutcome(language=target_language, error=e)
        except Exception as e:
            logger.error(f"Unexpected error translating {source_language}->{target_language}: {e}", exc_info=True)
            return LanguageOutcome(language=target_language, error=TranslationError(target_language))

        try:
            audio = await self.synthesizer.synthesize(text, target_language)
        except SynthesisError as e:
            return LanguageOutcome(language=target_language, error=e)
        except Exception as e:
            logger.error(f"Unexpected error synthesizing {target_language}: {e}", exc_info=True)
            return LanguageOutcome(language=target_language, error=SynthesisError(target_language))
        return LanguageOutcome(language=target_language, text=text, audio=audio)

    async def _deliver_outcome(self, room_code: str, sender: Session, outcome: LanguageOutcome) -> None:
        if not outcome.ok:
            await self._report(room_code, sender.session_id, outcome.error)
            return

        message = TranslatedAudioMessage(
            username=sender.display_name,
            text=outcome.text,
            audio=base64.b64encode(outcome.audio).decode("ascii"),
            language=outcome.language,
            is_translation=True,
        )
        for member in self.backend.members_speaking(room_code, outcome.language, exclude=sender.session_id):
            await self._deliver(room_code, member.session_id, message)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _deliver(self, room_code: str, session_id: str, message) -> bool:
        if not self.backend.is_member(room_code, session_id):
            logger.debug(f"Suppressed {message.type} for {session_id}: no longer in room {room_code}")
            return False
        return await self.notifier.send(session_id, message)

    async def _report(self, room_code: str, session_id: str, error: RelayError) -> None:
        session = self.backend.get_session(session_id)
        await self.notifier.send(
            session_id,
            ErrorMessage(
                code=error.code,
                message=error.message,
                username=session.display_name if session else None,
                language=getattr(error, "language", None),
            ),
        )

    @staticmethod
    def _advance(current: PipelineState, new: PipelineState, session_id: str) -> PipelineState:
        logger.debug(f"Utterance from {session_id}: {current.value} -> {new.value}")
        return new
