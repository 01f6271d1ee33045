"""ACME client errors."""
from typing import Any
from typing import Mapping
from typing import Optional


class Error(Exception):
    """Generic ACME client error."""


class TransportError(Error):
    """Network or connection failure.

    :ivar str url: URL that could not be reached.

    """
    def __init__(self, url: str, error: Exception, *args: Any) -> None:
        super().__init__(*args)
        self.url = url
        self.error = error

    def __str__(self) -> str:
        return 'Unable to reach {0}: {1}'.format(self.url, self.error)


class ProtocolError(Error):
    """Server response violated the protocol.

    :ivar str message: Human readable description.
    :ivar str url: Requested URL, if known.
    :ivar int status: HTTP status code, if a response was received.
    :ivar str reason: HTTP status text.
    :ivar payload: Payload that was sent, for diagnostics.
    :ivar problem: Decoded server problem document, if any.
    :type problem: `acme_client.messages.Error`

    """
    def __init__(self, message: str, url: Optional[str] = None,
                 status: Optional[int] = None, reason: Optional[str] = None,
                 payload: Any = None, problem: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.url = url
        self.status = status
        self.reason = reason
        self.payload = payload
        self.problem = problem

    def __str__(self) -> str:
        parts = [self.message]
        if self.status is not None:
            parts.append('HTTP {0} {1}'.format(self.status, self.reason or '').strip())
        if self.url:
            parts.append('url: {0}'.format(self.url))
        if self.problem is not None:
            parts.append(str(self.problem))
        if self.payload is not None:
            parts.append('payload: {0}'.format(self.payload))
        return ' :: '.join(parts)


class MissingNonce(ProtocolError):
    """Missing nonce error.

    The server must include a ``Replay-Nonce`` header in the response
    to the pre-flight request of every signed POST.

    :ivar headers: Mapping of HTTP headers

    """
    def __init__(self, url: str, headers: Mapping[str, str], payload: Any = None) -> None:
        super().__init__(
            'Server response did not include a replay nonce',
            url=url, payload=payload)
        self.headers = dict(headers)


class BadNonce(ProtocolError):
    """Nonce could not be decoded."""
    def __init__(self, url: str, nonce: str, error: Exception) -> None:
        super().__init__(
            'Invalid nonce ({0!r}): {1}'.format(nonce, error), url=url)
        self.nonce = nonce
        self.error = error


class MissingHeader(ProtocolError):
    """A required response header is absent."""


class UnexpectedContentType(ProtocolError):
    """Response carries the wrong Content-Type."""


class UnexpectedStatus(ProtocolError):
    """Response status code is not the one required."""


class ValidationError(Error):
    """Challenge self-check failed."""


class ConflictError(Error):
    """A record with the same name already exists.

    :ivar str name: Conflicting name.

    """
    def __init__(self, name: str, *args: Any) -> None:
        super().__init__(*args)
        self.name = name

    def __str__(self) -> str:
        return '{0!r} already exists'.format(self.name)


class CryptoError(Error):
    """Key generation, parsing, signing or decryption failure."""


class StorageError(Error):
    """Error coming from the persistent store."""


class ConfigurationError(Error):
    """Configuration sanity error."""
