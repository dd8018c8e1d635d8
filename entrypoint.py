import uvicorn
from constants import HOST, PORT, LOG_LEVEL, LOG_FILE
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from backend import redis_backend
from logging_config import get_logger

logger = get_logger(__name__)


def main():
    # Fail fast when the record store is unreachable
    redis_backend.ping()
    logger.info(f"Starting realtime coordination server on {HOST}:{PORT}")
    uvicorn.run("app:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
