from pathlib import Path
from typing import Optional

import openai
from openai import AsyncOpenAI

from constants import OPENAI_API_KEY, TRANSCRIPTION_MODEL, TRANSLATION_MODEL, TTS_MODEL
from errors import SynthesisError, TranscriptionError, TranscriptionKind, TranslationError
from languages import language_name, transcription_hint, voice_for
from logging_config import get_logger
from services.base import SpeechSynthesizer, SpeechToText, Translator

logger = get_logger(__name__)

TRANSLATION_PROMPT = (
    "You are a professional interpreter translating from {source} to {target}. "
    "Translate the user's text naturally and idiomatically, keeping its meaning and tone. "
    "Keep casual speech conversational and formal speech formal. "
    "Reply with the translation only, without notes or explanations."
)


def create_openai_client(api_key: Optional[str] = OPENAI_API_KEY) -> AsyncOpenAI:
    return AsyncOpenAI(api_key=api_key)


class OpenAITranscriber(SpeechToText):
    def __init__(self, client: AsyncOpenAI, model: str = TRANSCRIPTION_MODEL):
        self.client = client
        self.model = model

    async def transcribe(self, audio: Path, language_hint: str) -> str:
        try:
            with open(audio, "rb") as audio_file:
                transcription = await self.client.audio.transcriptions.create(
                    file=audio_file,
                    model=self.model,
                    language=transcription_hint(language_hint),
                    response_format="text",
                )
        except openai.OpenAIError as exc:
            logger.error(f"Transcription request failed: {exc}")
            raise TranscriptionError(TranscriptionKind.FAILED) from exc

        text = transcription if isinstance(transcription, str) else getattr(transcription, "text", "")
        if not text or not text.strip():
            raise TranscriptionError(TranscriptionKind.EMPTY_RESULT)
        return text.strip()


class OpenAITranslator(Translator):
    def __init__(self, client: AsyncOpenAI, model: str = TRANSLATION_MODEL, temperature: float = 0.3):
        self.client = client
        self.model = model
        self.temperature = temperature

    async def translate(self, text: str, source_language: str, target_language: str) -> str:
        prompt = TRANSLATION_PROMPT.format(source=language_name(source_language), target=language_name(target_language))
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": prompt},
                    {"role": "user", "content": text},
                ],
                temperature=self.temperature,
            )
        except openai.OpenAIError as exc:
            logger.error(f"Translation {source_language}->{target_language} failed: {exc}")
            raise TranslationError(target_language) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise TranslationError(target_language, "Translation returned empty text")
        return content.strip()


class OpenAISynthesizer(SpeechSynthesizer):
    def __init__(self, client: AsyncOpenAI, model: str = TTS_MODEL, speed: float = 1.0):
        self.client = client
        self.model = model
        self.speed = speed

    async def synthesize(self, text: str, language: str) -> bytes:
        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=voice_for(language),
                input=text,
                response_format="mp3",
                speed=self.speed,
            )
        except openai.OpenAIError as exc:
            logger.error(f"Speech synthesis for {language} failed: {exc}")
            raise SynthesisError(language) from exc

        return response.content
