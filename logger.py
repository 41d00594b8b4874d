"""Configuración de logging con salida enriquecida (rich).

Todos los módulos piden su logger con get_logger(__name__); el handler se
instala una sola vez por nombre.
"""

import logging
import os

from rich.logging import RichHandler


def get_logger(name=None) -> logging.Logger:
    """Crea y devuelve un logger configurado con RichHandler."""
    if name is None:
        name = "pos"
    logger = logging.getLogger(name)
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = logging.DEBUG if os.getenv("DEBUG") else getattr(logging, level_name, logging.INFO)
    logger.setLevel(log_level)

    if not logger.handlers:
        handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(logging.Formatter("[%(name)s]  %(message)s"))
        handler.setLevel(log_level)
        logger.addHandler(handler)
        # pytest's caplog listens on the root logger
        logger.propagate = True

    return logger
