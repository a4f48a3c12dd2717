import logging
import sys
from app.core.config import settings

def setup_logging(name: str = "clinictoken") -> logging.Logger:
    """
    Configure the application logger. Level comes from LOG_LEVEL.
    """
    logger = logging.getLogger(name)
    logger.setLevel(settings.LOG_LEVEL)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(settings.LOG_LEVEL)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))

    if not logger.handlers:
        logger.addHandler(handler)

    return logger

logger = setup_logging()
