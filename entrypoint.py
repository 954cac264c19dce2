import uvicorn
import os
from dotenv import load_dotenv

# .env must be loaded before constants are read
load_dotenv()

from logging_config import setup_logging

# Setup logging before importing app
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)

from app import app
from constants import HOST, PORT
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting relay server on {HOST}:{PORT}")
    uvicorn.run(app, host=HOST, port=PORT, ws_max_size=16 * 1024 * 1024)
