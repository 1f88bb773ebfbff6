"""exShell - an ex-style command-line interpreter."""

from loguru import logger

__version__ = "0.1.0"

# Library records stay quiet until the interactive entry point configures logging.
logger.disable("exshell")
