"""
Configuração centralizada de logs da aplicação

- ``configure_logging(level)``: anexa um único ``StreamHandler`` ao logger
  raiz da aplicação. Chamado uma vez pelo ponto de entrada (main.py).
- ``get_logger(name)``: obtém um logger filho. Sem configuração, o logger
  raiz recebe um ``NullHandler`` para não emitir avisos.

Módulos nunca anexam handlers próprios.
"""
import logging
import sys

APP_LOGGER_NAME = "financas"
_configured = False


def _parse_level(level) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    return logging.INFO


def configure_logging(level="INFO", fmt: str = None, stream=sys.stderr) -> None:
    """Configura o logger raiz da aplicação uma única vez"""
    global _configured
    if _configured:
        return

    logger = logging.getLogger(APP_LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s"))

    logger.setLevel(_parse_level(level))
    logger.addHandler(handler)
    logger.propagate = False

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Retorna ``financas.<name>``"""
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    if not _configured and not app_logger.handlers:
        app_logger.addHandler(logging.NullHandler())
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")
