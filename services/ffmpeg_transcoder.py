import shutil
from pathlib import Path

import ffmpeg
from starlette.concurrency import run_in_threadpool

from errors import TranscodeError
from logging_config import get_logger
from services.base import AudioTranscoder

logger = get_logger(__name__)

# Whisper expects 16kHz mono
SAMPLE_RATE = 16000
CHANNELS = 1


def ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


class FfmpegTranscoder(AudioTranscoder):
    def __init__(self, sample_rate: int = SAMPLE_RATE, channels: int = CHANNELS):
        self.sample_rate = sample_rate
        self.channels = channels

    async def transcode(self, source: Path, destination: Path) -> Path:
        logger.debug(f"Converting audio to WAV format: input={source}, output={destination}")

        def convert():
            (
                ffmpeg.input(str(source))
                .output(str(destination), format="wav", acodec="pcm_s16le", ac=self.channels, ar=str(self.sample_rate))
                .overwrite_output()
                .run(capture_stdout=True, capture_stderr=True, cmd=["ffmpeg", "-nostdin", "-loglevel", "error"])
            )

        try:
            await run_in_threadpool(convert)
        except ffmpeg.Error as exc:
            detail = exc.stderr.decode(errors="replace").strip() if exc.stderr else ""
            logger.error(f"FFmpeg conversion error for {source}: {detail}")
            raise TranscodeError(f"Audio conversion failed: {detail}" if detail else None) from exc
        except OSError as exc:
            logger.error(f"Could not run ffmpeg for {source}: {exc}")
            raise TranscodeError() from exc

        logger.debug(f"Audio conversion completed: {destination} ({destination.stat().st_size} bytes)")
        return destination

    async def get_duration(self, path: Path) -> float:
        try:
            metadata = await run_in_threadpool(ffmpeg.probe, str(path))
            return float(metadata["format"]["duration"])
        except ffmpeg.Error as exc:
            detail = exc.stderr.decode(errors="replace").strip() if exc.stderr else ""
            logger.error(f"FFprobe error for {path}: {detail}")
            raise TranscodeError("Could not read audio duration") from exc
        except (KeyError, TypeError, ValueError, OSError) as exc:
            logger.error(f"FFprobe returned no usable duration for {path}: {exc}")
            raise TranscodeError("Could not read audio duration") from exc
