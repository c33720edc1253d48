import logging
import sys

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def setup_logging(level: int | str = logging.INFO) -> logging.Logger:
    logger = logging.getLogger("groovetask")
    if logger.handlers:
        return logger  # already configured
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    # per-request chatter from the HTTP stack, unless we are debugging
    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    return logger
