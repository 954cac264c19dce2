import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Union

from logging_config import get_logger

logger = get_logger(__name__)


class ArtifactScope:
    """Temporary audio files owned by a single pipeline run."""

    def __init__(self, temp_dir: Union[str, Path]):
        self.temp_dir = Path(temp_dir)
        self.prefix = f"temp_{datetime.now().strftime('%Y-%m-%dT%H-%M-%S-%f')}_{uuid.uuid4()}"
        self.paths: List[Path] = []

    def new_path(self, suffix: str) -> Path:
        path = self.temp_dir / f"{self.prefix}{suffix}"
        self.paths.append(path)
        return path

    def release(self) -> None:
        for path in self.paths:
            if not path.exists():
                continue
            try:
                path.unlink()
                logger.debug(f"Deleted temp file: {path}")
            except OSError as e:
                logger.error(f"Error deleting temp file: {path}: {e}")
        self.paths.clear()


@contextmanager
def ephemeral_artifacts(temp_dir: Union[str, Path]) -> Iterator[ArtifactScope]:
    """Yield an ArtifactScope whose files are deleted on every exit path."""
    scope = ArtifactScope(temp_dir)
    try:
        yield scope
    finally:
        scope.release()
