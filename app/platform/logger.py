import logging
import os
from logging.handlers import RotatingFileHandler

# 1. Create the logs directory if it doesn't exist
log_dir = os.path.join(os.getcwd(), "logs")

# 2. Define the path to the log file
log_file_path = os.path.join(log_dir, "embed_sessions.log")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str, log_to_file: bool = True):
    """
    Creates a logger instance that writes to console AND a file.

    Child loggers (``logging.getLogger(__name__)`` inside ``app.*``) propagate
    here, so configuring the ``app`` logger once covers every module.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)

    # 3. Create Formatters (How the log looks)
    formatter = logging.Formatter(LOG_FORMAT)

    # 4. Handler 1: Write to File (Rotating)
    if log_to_file:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(log_file_path, maxBytes=10_000_000, backupCount=5)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.INFO)
        logger.addHandler(file_handler)

    # 5. Handler 2: Write to Console (Terminal)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.INFO)
    logger.addHandler(console_handler)

    return logger
