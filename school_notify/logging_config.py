# school_notify/logging_config.py
"""
Configuración de logging del servicio (stdout, formato único).
"""
import logging
import sys

from school_notify import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def configure_logging(level: str = None) -> logging.Logger:
    global _configured
    root_logger = logging.getLogger()
    if _configured:
        return root_logger

    root_logger.setLevel((level or config.LOG_LEVEL).upper())

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    root_logger.addHandler(console_handler)

    # menos ruido de librerías de terceros
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("azure").setLevel(logging.WARNING)

    _configured = True
    return root_logger
