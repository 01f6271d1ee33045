"""Logging setup.

Modules log through ``logging.getLogger(__name__)``; applications call
`setup_logging` once to get terminal output at the requested level and,
optionally, a rotating debug log file.

"""
import logging
import logging.handlers
import sys
from typing import IO
from typing import Optional

from acme_client import errors

# Logging format
CLI_FMT = "%(message)s"
FILE_FMT = "%(asctime)s:%(levelname)s:%(name)s:%(message)s"

ANSI_SGR_RED = "\033[31m"
ANSI_SGR_RESET = "\033[0m"

MAX_LOG_BACKUPS = 10

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None,
                  stream: Optional[IO] = None) -> None:
    """Configure the root logger.

    :param int level: Level of the terminal output.
    :param str log_file: Write a DEBUG level log to this (rotated) file.
    :param stream: Terminal stream, `sys.stderr` by default.

    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if isinstance(handler, (ColoredStreamHandler, logging.handlers.RotatingFileHandler)):
            root_logger.removeHandler(handler)
            handler.close()

    stream_handler = ColoredStreamHandler(stream)
    stream_handler.setFormatter(logging.Formatter(CLI_FMT))
    stream_handler.setLevel(level)
    root_logger.addHandler(stream_handler)

    root_level = level
    if log_file is not None:
        root_logger.addHandler(setup_log_file_handler(log_file, FILE_FMT))
        root_level = logging.DEBUG
    root_logger.setLevel(root_level)
    logger.debug('Root logging level set at %d', level)


def setup_log_file_handler(log_file: str, fmt: str) -> logging.Handler:
    """Setup file debug logging.

    :param str log_file: path of the log file
    :param str fmt: logging format string

    """
    try:
        handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=2 ** 20, backupCount=MAX_LOG_BACKUPS)
    except IOError as error:
        raise errors.Error('Unable to open log file {0}: {1}'.format(log_file, error))
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt=fmt))
    return handler


class ColoredStreamHandler(logging.StreamHandler):
    """Sends colored logging output to a stream.

    If the specified stream is not a tty, the class works like the
    standard `logging.StreamHandler`. Default red_level is
    `logging.WARNING`.

    :ivar bool colored: True if output should be colored
    :ivar bool red_level: The level at which to output

    """
    def __init__(self, stream: Optional[IO] = None) -> None:
        super().__init__(stream)
        self.colored = (sys.stderr.isatty() if stream is None else
                        stream.isatty())
        self.red_level = logging.WARNING

    def format(self, record: logging.LogRecord) -> str:
        out = super().format(record)
        if self.colored and record.levelno >= self.red_level:
            return ''.join((ANSI_SGR_RED, out, ANSI_SGR_RESET))
        return out
