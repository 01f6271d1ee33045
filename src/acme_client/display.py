"""Operator interaction."""
from abc import ABCMeta
from abc import abstractmethod
import getpass
import logging
import os
import sys
import textwrap
from typing import Optional
from typing import TextIO

from acme_client import errors

logger = logging.getLogger(__name__)

SIDE_FRAME = ("- " * 39) + "-"
"""Display boundary (alternates spaces, so when copy-pasted, markdown doesn't interpret
it as a heading)"""


def wrap_lines(msg: str) -> str:
    """Format lines nicely to 80 chars, respecting existing newlines."""
    return '\n'.join(
        textwrap.fill(line, 80, break_long_words=False, break_on_hyphens=False)
        for line in msg.splitlines())


class Display(metaclass=ABCMeta):
    """Interface to the operator."""

    @abstractmethod
    def notification(self, message: str, pause: bool = True,
                     wrap: bool = True) -> None:  # pragma: no cover
        """Show ``message`` and, if ``pause``, wait for acknowledgement.

        :param bool wrap: Whether to wrap long lines. Artifacts the
            operator has to copy (keys, certificates) must not be wrapped.

        """
        raise NotImplementedError()

    @abstractmethod
    def yesno(self, message: str, default: Optional[bool] = None) -> bool:  # pragma: no cover
        """Ask a yes/no question."""
        raise NotImplementedError()

    @abstractmethod
    def password(self, prompt: str) -> str:  # pragma: no cover
        """Ask for a secret without echoing it."""
        raise NotImplementedError()


class FileDisplay(Display):
    """File-based display, reading answers from stdin."""

    def __init__(self, outfile: TextIO = sys.stdout) -> None:
        self.outfile = outfile

    def _write_framed(self, message: str) -> None:
        self.outfile.write("{line}{frame}{line}{msg}{line}{frame}{line}".format(
            line=os.linesep, frame=SIDE_FRAME, msg=message))
        self.outfile.flush()

    def notification(self, message: str, pause: bool = True, wrap: bool = True) -> None:
        if wrap:
            message = wrap_lines(message)
        logger.debug("Notifying user: %s", message)
        self._write_framed(message)
        if pause:
            self._readline("Press Enter to Continue")

    def yesno(self, message: str, default: Optional[bool] = None) -> bool:
        self._write_framed(wrap_lines(message))
        while True:
            ans = self._readline("(Y)es/(N)o: ")
            if not ans and default is not None:
                return default
            if ans[:1] in ("y", "Y"):
                return True
            if ans[:1] in ("n", "N"):
                return False

    def password(self, prompt: str) -> str:
        return getpass.getpass(prompt + ": ")

    def _readline(self, prompt: str) -> str:
        self.outfile.write(prompt)
        self.outfile.flush()
        line = sys.stdin.readline()
        if not line:
            raise EOFError
        return line.rstrip('\n')


class NoninteractiveDisplay(Display):
    """A display that never asks for interactive user input.

    Questions without a default are an error.

    """

    def __init__(self, outfile: TextIO = sys.stdout) -> None:
        self.outfile = outfile

    def notification(self, message: str, pause: bool = False, wrap: bool = True) -> None:
        if wrap:
            message = wrap_lines(message)
        logger.debug("Notifying user: %s", message)
        self.outfile.write("{line}{frame}{line}{msg}{line}{frame}{line}".format(
            line=os.linesep, frame=SIDE_FRAME, msg=message))
        self.outfile.flush()

    def yesno(self, message: str, default: Optional[bool] = None) -> bool:
        if default is None:
            raise self._interaction_fail(message)
        return default

    def password(self, prompt: str) -> str:
        raise self._interaction_fail(prompt)

    @classmethod
    def _interaction_fail(cls, message: str) -> errors.Error:
        return errors.Error(
            "Unable to get an answer without interaction for:\n{0}".format(message))
