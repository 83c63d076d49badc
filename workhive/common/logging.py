import logging
import sys

from workhive.config import settings

ROOT_LOGGER = "workhive"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> None:
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    # SQL echo is noisy outside of development
    if settings.APP_ENV != "development":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
