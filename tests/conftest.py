"""
Shared fixtures for relay tests: a fresh registry, fakes for the external
speech services, and a notifier that records what would have been sent.
"""

from collections import defaultdict
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from backend import RoomBackend
from errors import SynthesisError, TranscodeError, TranscriptionError, TranscriptionKind, TranslationError
from pipeline import UtterancePipeline
from services.base import AudioTranscoder, SpeechSynthesizer, SpeechToText, Translator


# ============ FAKE SERVICES ============


class FakeTranscoder(AudioTranscoder):
    def __init__(self, duration: float = 2.5, fail: bool = False):
        self.duration = duration
        self.fail = fail
        self.transcoded: List[Path] = []

    async def transcode(self, source: Path, destination: Path) -> Path:
        assert source.exists(), "raw audio should be written before transcoding"
        if self.fail:
            raise TranscodeError()
        destination.write_bytes(b"RIFF\x00\x00\x00\x00WAVEfmt ")
        self.transcoded.append(destination)
        return destination

    async def get_duration(self, path: Path) -> float:
        return self.duration


class FakeTranscriber(SpeechToText):
    def __init__(self, transcript: str = "hello everyone", fail: bool = False):
        self.transcript = transcript
        self.fail = fail
        self.calls: List[tuple] = []
        # runs while the pipeline is suspended on this call
        self.during_call: Optional[Callable[[], None]] = None

    async def transcribe(self, audio: Path, language_hint: str) -> str:
        self.calls.append((audio, language_hint))
        if self.during_call:
            self.during_call()
        if self.fail:
            raise TranscriptionError(TranscriptionKind.FAILED)
        if not self.transcript.strip():
            raise TranscriptionError(TranscriptionKind.EMPTY_RESULT)
        return self.transcript


class FakeTranslator(Translator):
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls: List[tuple] = []
        self.during_call: Optional[Callable[[], None]] = None

    async def translate(self, text: str, source_language: str, target_language: str) -> str:
        self.calls.append((text, source_language, target_language))
        if self.during_call:
            self.during_call()
        if target_language in self.fail_for:
            raise TranslationError(target_language)
        return f"[{target_language}] {text}"


class FakeSynthesizer(SpeechSynthesizer):
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls: List[tuple] = []
        self.during_call: Optional[Callable[[], None]] = None

    async def synthesize(self, text: str, language: str) -> bytes:
        self.calls.append((text, language))
        if self.during_call:
            self.during_call()
        if language in self.fail_for:
            raise SynthesisError(language)
        return f"mp3:{language}:{text}".encode("utf-8")


class RecordingNotifier:
    """Stands in for ConnectionManager and keeps every message per session."""

    def __init__(self):
        self.sent = defaultdict(list)
        self.disconnected = set()

    async def send(self, session_id: str, message) -> bool:
        if session_id in self.disconnected:
            return False
        self.sent[session_id].append(message)
        return True

    def types_for(self, session_id: str) -> List[str]:
        return [message.type for message in self.sent[session_id]]

    def of_type(self, session_id: str, message_type: str) -> list:
        return [message for message in self.sent[session_id] if message.type == message_type]


# ============ FIXTURES ============


@pytest.fixture
def backend():
    return RoomBackend(max_members=0, max_code_attempts=10)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def transcoder():
    return FakeTranscoder()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def translator():
    return FakeTranslator()


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def temp_dir(tmp_path):
    return tmp_path / "temp"


@pytest.fixture
def pipeline(backend, notifier, transcoder, transcriber, translator, synthesizer, temp_dir):
    return UtterancePipeline(
        backend=backend,
        notifier=notifier,
        transcoder=transcoder,
        transcriber=transcriber,
        translator=translator,
        synthesizer=synthesizer,
        temp_dir=temp_dir,
        max_file_size=1024,
        max_duration=60,
    )


@pytest.fixture
def room(backend):
    """Create a room and return a helper that joins sessions to it."""
    code = backend.create_room()

    def join(session_id: str, language: str, name: Optional[str] = None):
        backend.register_session(session_id)
        return backend.join_room(code, session_id, name or session_id, language)

    join.code = code
    return join
