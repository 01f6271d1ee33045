"""Challenge responders: derive, show, self-check and submit proofs."""
from abc import ABCMeta
from abc import abstractmethod
import logging
from typing import Dict
from typing import Mapping
from typing import Optional
from typing import Type

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
import josepy as jose
import requests
from requests.adapters import HTTPAdapter

from acme_client import account
from acme_client import challenges
from acme_client import constants
from acme_client import crypto_util
from acme_client import display
from acme_client import errors
from acme_client import jws
from acme_client import messages

logger = logging.getLogger(__name__)


class VerificationClient:
    """Client for the self-checks run before a challenge is submitted.

    TLS certificates are not verified: provisioned resources are commonly
    served with self-signed certificates. This relaxed policy only applies
    to requests made through this object.

    :ivar str host: Connect here instead of the domain being validated
        (the domain is still sent as ``Host`` header or SNI name).
    :ivar dict ports: Non-standard ports per scheme (``http``, ``https``)
        and for TLS probes (``tls``).

    """

    def __init__(self, timeout: int = constants.DEFAULT_NETWORK_TIMEOUT,
                 user_agent: str = constants.USER_AGENT, host: Optional[str] = None,
                 ports: Optional[Mapping[str, int]] = None) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.host = host
        self.ports: Dict[str, int] = dict(ports or {})
        self.session = requests.Session()
        self.session.verify = False
        adapter = HTTPAdapter()
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def __del__(self) -> None:
        try:
            self.session.close()
        except Exception:  # pylint: disable=broad-except
            pass

    def get(self, scheme: str, domain: str, path: str) -> requests.Response:
        """GET ``path`` from ``domain``.

        :raises .TransportError: in case of any network problem.

        """
        host = self.host or domain
        port = self.ports.get(scheme)
        netloc = host if port is None else '{0}:{1}'.format(host, port)
        url = '{0}://{1}{2}'.format(scheme, netloc, path)
        headers = {'User-Agent': self.user_agent}
        if host != domain:
            headers['Host'] = domain
        logger.debug('Verifying %s://%s%s via %s', scheme, domain, path, url)
        try:
            return self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as error:
            raise errors.TransportError(url, error)

    def probe_sni(self, server_name: str, domain: str) -> x509.Certificate:
        """Certificate presented by ``domain`` for SNI ``server_name``."""
        host = self.host or domain
        port = self.ports.get('tls', challenges.DVSNIResponse.PORT)
        return crypto_util.probe_sni(server_name.encode('ascii'), host.encode('ascii'),
                                     port=port, timeout=self.timeout)


class ChallengeResponder(metaclass=ABCMeta):
    """Answers one challenge of an authorization.

    The responder is seeded with proof data stored earlier for the same
    challenge; without any, the proof is derived anew.

    :ivar .AuthorizationResource authzr:
    :ivar int index: Index of the challenge in the authorization.
    :ivar .VerificationClient verifier:

    """
    challenge_cls: Type[challenges.Challenge] = NotImplemented
    response_cls: Type[challenges.ChallengeResponse] = NotImplemented

    def __init__(self, authzr: messages.AuthorizationResource, index: int,
                 acc: account.Account,
                 verifier: Optional[VerificationClient] = None) -> None:
        if index < 0:
            raise errors.Error('No challenge {0} in {1}'.format(index, authzr.uri))
        self.authzr = authzr
        self.index = index
        self._account = acc
        self.verifier = verifier if verifier is not None else VerificationClient()
        if not isinstance(self.challenge, self.challenge_cls):
            raise errors.Error('Challenge {0} is not a {1} challenge'.format(
                index, self.challenge_cls.typ))
        self._response: Optional[challenges.ChallengeResponse] = None
        stored = authzr.challenges_data.get(self.challenge.uri)
        if isinstance(stored, self.response_cls):
            self._response = stored
        else:
            if stored is not None:
                logger.warning('Ignoring stored %s data for %s challenge %s',
                               stored.typ, self.challenge.typ, self.challenge.uri)
            self.reset_response()

    @property
    def challenge(self) -> challenges.Challenge:
        """The challenge being answered."""
        return self.authzr.body.challenges[self.index]

    @property
    def challenge_data(self) -> challenges.ChallengeResponse:
        """Current proof data, to be persisted with the authorization."""
        assert self._response is not None
        return self._response

    @property
    def registration(self) -> account.Account:
        """Account the proof is bound to."""
        return self._account

    @property
    def dns(self) -> str:
        """Domain name being validated."""
        return self.authzr.body.dns or ''

    @abstractmethod
    def reset_response(self) -> None:  # pragma: no cover
        """(Re)derive the proof from the challenge and the account key."""
        raise NotImplementedError()

    def initialize_response(self, disp: display.Display) -> None:
        """Ask the operator for parameters of the proof, if any."""

    @abstractmethod
    def show_instructions(self, disp: display.Display) -> None:  # pragma: no cover
        """Tell the operator what to provision."""
        raise NotImplementedError()

    @abstractmethod
    def verify(self) -> None:  # pragma: no cover
        """Check that the proof is live.

        :raises .ValidationError: if it is not.

        """
        raise NotImplementedError()

    def send_payload(self) -> challenges.ChallengeResponse:
        """Body to post to the challenge URI."""
        return self.challenge_data

    def _fetch(self, scheme: str) -> requests.Response:
        chall = self.challenge
        if not chall.good_token:  # type: ignore[attr-defined]
            raise errors.ValidationError(
                'Token {0!r} is not usable in a path'.format(chall.token))  # type: ignore[attr-defined]
        url = chall.validation_url(self.dns, scheme)  # type: ignore[attr-defined]
        try:
            response = self.verifier.get(scheme, self.dns, chall.path)  # type: ignore[attr-defined]
        except errors.TransportError as error:
            raise errors.ValidationError('GET {0} failed: {1}'.format(url, error.error))
        if response.status_code != 200:
            raise errors.ValidationError('GET {0} failed: {1} {2}'.format(
                url, response.status_code, response.reason))
        return response


class HTTP01Responder(ChallengeResponder):
    """http-01: serve the key authorization as text."""
    challenge_cls = challenges.HTTP01
    response_cls = challenges.HTTP01Response

    def reset_response(self) -> None:
        self._response = self.challenge.response(self.registration.key)  # type: ignore[attr-defined]

    @property
    def validation_url(self) -> str:
        """Where the key authorization has to be served."""
        return self.challenge.validation_url(self.dns)  # type: ignore[attr-defined]

    def show_instructions(self, disp: display.Display) -> None:
        disp.notification(
            'Make the text on the next line available (without quotes) as {0}\n\n{1}'
            .format(self.validation_url, self.challenge_data.key_authorization),  # type: ignore[attr-defined]
            wrap=False)

    def verify(self) -> None:
        response = self._fetch('http')
        response.encoding = response.encoding or 'utf-8'
        reason = self.challenge_data.check_document(  # type: ignore[attr-defined]
            response.headers.get('Content-Type'), response.text)
        if reason is not None:
            raise errors.ValidationError(
                'Document at {0}: {1}'.format(self.validation_url, reason))
        logger.info('Verified http-01 document for %s', self.dns)


class SimpleHTTPResponder(ChallengeResponder):
    """simpleHttp: serve a signed document, over https by default."""
    challenge_cls = challenges.SimpleHTTP
    response_cls = challenges.SimpleHTTPResponse

    TLS_QUESTION = 'Use TLS for simple http(s) domain name verification?'

    def reset_response(self) -> None:
        self._response = self.challenge.response(tls=True)  # type: ignore[attr-defined]

    def initialize_response(self, disp: display.Display) -> None:
        tls = disp.yesno(self.TLS_QUESTION, default=True)
        self._response = self.challenge.response(tls=tls)  # type: ignore[attr-defined]

    @property
    def tls(self) -> bool:
        """Whether the document is served over https."""
        return self.challenge_data.tls  # type: ignore[attr-defined]

    @property
    def validation_url(self) -> str:
        """Where the signed document has to be served."""
        return self.challenge.validation_url(  # type: ignore[attr-defined]
            self.dns, self.challenge_data.scheme)  # type: ignore[attr-defined]

    def validation_document(self) -> str:
        """Signed document to provision (flattened JWS)."""
        return self.challenge.gen_validation(  # type: ignore[attr-defined]
            self.registration.key, self.tls).json_dumps()

    def show_instructions(self, disp: display.Display) -> None:
        disp.notification(
            'Make the text on the next line available (without quotes) as {0}\n\n{1}'
            .format(self.validation_url, self.validation_document()),
            wrap=False)

    def verify(self) -> None:
        response = self._fetch(self.challenge_data.scheme)  # type: ignore[attr-defined]
        url = self.validation_url
        media_type = response.headers.get('Content-Type', '').split(';')[0].strip()
        if media_type not in self.response_cls.CONTENT_TYPES:  # type: ignore[attr-defined]
            raise errors.ValidationError(
                'Document at {0} has wrong content-type {1!r}, expected none '
                'or {2}'.format(url, media_type, constants.JOSE_CONTENT_TYPE))
        try:
            validation = jws.JWS.json_loads(response.content)
        except (ValueError, jose.DeserializationError) as error:
            raise errors.ValidationError(
                "Couldn't parse signature of document at {0}: {1}".format(url, error))
        if not self.challenge.check_validation(  # type: ignore[attr-defined]
                validation, self.registration.public_key, self.tls):
            raise errors.ValidationError(
                'Signed document at {0} is not valid'.format(url))
        logger.info('Verified simpleHttp document for %s', self.dns)


class DVSNIResponder(ChallengeResponder):
    """dvsni: present a certificate for a name derived from a signature."""
    challenge_cls = challenges.DVSNI
    response_cls = challenges.DVSNIResponse

    def reset_response(self) -> None:
        self._response = self.challenge.response(self.registration.key)  # type: ignore[attr-defined]

    @property
    def z_domain(self) -> str:
        """SNI name the certificate must be served for."""
        return self.challenge_data.z_domain  # type: ignore[attr-defined]

    def make_certificate(self) -> str:
        """Example self-signed certificate and key (PEM) for `z_domain`."""
        key = crypto_util.generate_private_key(
            'rsa', rsa_key_size=constants.DVSNI_CERT_KEY_SIZE)
        cert = crypto_util.make_self_signed_cert(key, [self.z_domain])
        return (cert.public_bytes(Encoding.PEM) +
                crypto_util.dump_private_key(key)).decode('ascii')

    def show_instructions(self, disp: display.Display) -> None:
        text = ('{0}:{1} needs to present a (self-signed) certificate for SNI '
                'name ("vhost") {2}\n'.format(self.dns, self.response_cls.PORT,  # type: ignore[attr-defined]
                                              self.z_domain))
        try:
            text += ('You can use the following {0}-bit RSA certificate:\n{1}'
                     .format(constants.DVSNI_CERT_KEY_SIZE, self.make_certificate()))
        except errors.CryptoError as error:
            text += ("Couldn't generate example certificate (build your own "
                     "instead): {0}\n".format(error))
        disp.notification(text, wrap=False)

    def verify(self) -> None:
        name = self.z_domain
        try:
            cert = self.verifier.probe_sni(name, self.dns)
        except errors.TransportError as error:
            raise errors.ValidationError(
                'TLS connection to {0} failed: {1}'.format(self.dns, error.error))
        dns_names = crypto_util.get_dns_names(cert)
        if name not in dns_names:
            raise errors.ValidationError(
                "Certificate on {0} for SNI name {1} didn't contain the SNI name "
                "in subjectAltName: {2}".format(self.dns, name, dns_names))
        logger.info('Verified dvsni certificate for %s', self.dns)


RESPONDERS: Dict[str, Type[ChallengeResponder]] = {
    cls.challenge_cls.typ: cls
    for cls in (HTTP01Responder, SimpleHTTPResponder, DVSNIResponder)
}
"""Responder class per challenge type."""


def responder_for(authzr: messages.AuthorizationResource, index: int,
                  acc: account.Account,
                  verifier: Optional[VerificationClient] = None) -> ChallengeResponder:
    """Instantiate the responder for challenge ``index`` of ``authzr``.

    :raises .Error: for challenge types that can't be answered.

    """
    if index < 0:
        raise errors.Error('No challenge {0} in {1}'.format(index, authzr.uri))
    try:
        chall = authzr.body.challenges[index]
    except IndexError:
        raise errors.Error('No challenge {0} in {1}'.format(index, authzr.uri))
    try:
        cls = RESPONDERS[chall.typ]
    except KeyError:
        raise errors.Error('Unsupported challenge type {0!r}'.format(chall.typ))
    return cls(authzr, index, acc, verifier)
