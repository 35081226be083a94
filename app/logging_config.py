"""
Logging del servizio. Tutti i moduli scrivono sotto il logger "model_relay"
(`model_relay.api`, `model_relay.storage`, `model_relay.listing`); qui si
configura l'handler su stderr e il livello, una volta all'avvio.
"""
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Dict

APP_LOGGER = "model_relay"

LOG_FORMAT = "%(asctime)s.%(msecs)03dZ [%(levelname)s] %(name)s: %(message)s"
DATE_FMT = "%Y-%m-%dT%H:%M:%S"

# librerie che a INFO/DEBUG loggano ogni richiesta HTTP
LIBRARY_LEVELS: Dict[str, int] = {
    "urllib3": logging.WARNING,
    "httpx": logging.WARNING,
    "uvicorn.access": logging.WARNING,  # le richieste le logga il middleware
}


class UTCTimeFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return ts.strftime(datefmt or self.default_time_format)


def _level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: str | None = None) -> logging.Logger:
    """
    Handler unico sul root logger (nessun duplicato se chiamata più volte),
    livello da `level` oppure LOG_LEVEL (default INFO) applicato ai logger
    `model_relay.*`. Ritorna il logger applicativo.
    """
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(UTCTimeFormatter(LOG_FORMAT, datefmt=DATE_FMT))
        root.addHandler(handler)
    root.setLevel(logging.WARNING)

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.setLevel(_level(level or os.getenv("LOG_LEVEL", "INFO")))

    for name, lib_level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(lib_level)
    return app_logger
