"""
Contracts for the external collaborators used by the utterance pipeline.

Implementations convert their library's exceptions into the typed errors
from ``errors`` and never retry on their own; the pipeline decides what a
failure means.
"""

from abc import ABC, abstractmethod
from pathlib import Path


class AudioTranscoder(ABC):
    @abstractmethod
    async def transcode(self, source: Path, destination: Path) -> Path:
        """Write a mono, fixed-sample-rate WAV of ``source`` to ``destination``.

        Raises:
            TranscodeError: conversion failed.
        """

    @abstractmethod
    async def get_duration(self, path: Path) -> float:
        """Return the duration of ``path`` in seconds.

        Raises:
            TranscodeError: the file duration could not be read.
        """


class SpeechToText(ABC):
    @abstractmethod
    async def transcribe(self, audio: Path, language_hint: str) -> str:
        """Raises TranscriptionError."""


class Translator(ABC):
    @abstractmethod
    async def translate(self, text: str, source_language: str, target_language: str) -> str:
        """Raises TranslationError."""


class SpeechSynthesizer(ABC):
    @abstractmethod
    async def synthesize(self, text: str, language: str) -> bytes:
        """Raises SynthesisError."""
