import asyncio
import time
from pathlib import Path
from typing import Optional, Union

from starlette.concurrency import run_in_threadpool

from backend import RoomBackend
from constants import HOUSEKEEPING_INTERVAL, PENDING_ROOM_TTL, TEMP_FILE_MAX_AGE
from logging_config import get_logger
from verification import NonceStore

logger = get_logger(__name__)


def cleanup_old_files(temp_dir: Union[str, Path], max_age: float = TEMP_FILE_MAX_AGE, now: Optional[float] = None) -> int:
    """Delete files in ``temp_dir`` last modified more than ``max_age`` seconds ago."""
    temp_dir = Path(temp_dir)
    if not temp_dir.exists():
        logger.info(f"Temp directory {temp_dir} does not exist. Creating...")
        temp_dir.mkdir(parents=True, exist_ok=True)
        return 0

    now = time.time() if now is None else now
    deleted = 0
    for path in temp_dir.iterdir():
        if not path.is_file():
            continue
        try:
            if now - path.stat().st_mtime > max_age:
                path.unlink()
                deleted += 1
                logger.info(f"Deleted old file: {path.name}")
        except OSError as e:
            logger.error(f"Error deleting file {path.name}: {e}")
    return deleted


def run_housekeeping(backend: RoomBackend, nonce_store: NonceStore, temp_dir: Union[str, Path]) -> None:
    files = cleanup_old_files(temp_dir)
    nonces = nonce_store.sweep()
    rooms = backend.expire_pending_rooms(PENDING_ROOM_TTL)
    logger.debug(f"Housekeeping done: {files} temp files, {nonces} nonces, {rooms} pending rooms removed")


async def housekeeping_loop(
    backend: RoomBackend,
    nonce_store: NonceStore,
    temp_dir: Union[str, Path],
    interval: float = HOUSEKEEPING_INTERVAL,
) -> None:
    logger.info(f"Starting housekeeping loop (every {interval}s)")
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                await run_in_threadpool(run_housekeeping, backend, nonce_store, temp_dir)
            except Exception as e:
                logger.error(f"Housekeeping run failed: {e}", exc_info=True)
    except asyncio.CancelledError:
        logger.info("Housekeeping loop cancelled")
        raise
