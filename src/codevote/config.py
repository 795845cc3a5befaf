"""Application configuration and logging setup."""

import logging
import os


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv("CODEVOTE_DATABASE_URL", "sqlite:///codevote.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # shared secret for /admin/* endpoints; admin auth is disabled when unset
    ADMIN_TOKEN = os.getenv("CODEVOTE_ADMIN_TOKEN")
    # the monitoring view polls instead of subscribing
    MONITOR_REFRESH_SECONDS = int(os.getenv("CODEVOTE_MONITOR_REFRESH_SECONDS", "10"))
    LOG_LEVEL = os.getenv("CODEVOTE_LOG_LEVEL", "INFO")


def make_logger(name: str = "codevote", level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("%(asctime)s [%(levelname)-5.5s]  %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    return logger
