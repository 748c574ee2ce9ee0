import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Get the logger
logger = logging.getLogger("storage_provider")


def configure_logging(level=None):
    """
    Configures stdout logging for applications that build their driver with
    create_driver(). Does nothing if the root logger already has handlers.
    """
    logging.basicConfig(
        level=(level or os.getenv("STORAGE_LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)  # Ensure logs go to stdout
        ]
    )
