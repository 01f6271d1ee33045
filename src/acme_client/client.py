"""ACME client API."""
import base64
import http.client as http_client
import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Type
from typing import TypeVar
import urllib.parse

from cryptography.hazmat.primitives.serialization import Encoding
import josepy as jose
import requests
from requests.adapters import HTTPAdapter

from acme_client import challenges
from acme_client import constants
from acme_client import crypto_util
from acme_client import errors
from acme_client import jws
from acme_client import messages

logger = logging.getLogger(__name__)

GenericJSONObject = TypeVar('GenericJSONObject', bound=jose.JSONDeSerializable)


def links(response: requests.Response) -> Dict[str, str]:
    """Map ``Link`` relation names to (absolute) URLs.

    Links without a ``rel`` parameter are dropped.

    :param requests.Response response:
    :rtype: dict

    """
    result = {}
    for key, link in response.links.items():
        if 'rel' in link and 'url' in link:
            result[key] = urllib.parse.urljoin(response.url or '', link['url'])
    return result


class Client:
    """ACME client for the signed-JSON draft API.

    Every method maps to a single protocol exchange; records are never
    persisted here.

    :ivar messages.Directory directory:
    :ivar .ClientNetwork net: Client network.

    """

    def __init__(self, directory: messages.Directory, net: 'ClientNetwork') -> None:
        """Initialize.

        :param .messages.Directory directory: Directory Resource
        :param .ClientNetwork net: Client network.

        """
        self.directory = directory
        self.net = net

    @classmethod
    def get_directory(cls, url: str, net: 'ClientNetwork') -> messages.Directory:
        """Retrieve the directory of endpoints published at ``url``.

        :param str url: the root URL of the ACME server
        :param ClientNetwork net: the ClientNetwork to use to make the request

        :raises .ProtocolError: on non-2xx status or malformed JSON.

        :rtype: messages.Directory

        """
        response = net.get(url)
        return _decode(messages.Directory, response, url)

    def _endpoint(self, name: str) -> str:
        url = self.directory[name]
        if not url:
            raise errors.ProtocolError(
                'Directory does not provide the {0} endpoint'.format(name))
        return url

    def new_registration(self, new_reg: messages.NewRegistration
                         ) -> messages.RegistrationResource:
        """Register.

        :param .NewRegistration new_reg:

        :returns: Registration Resource.
        :rtype: `.RegistrationResource`

        """
        return self._send_registration(self._endpoint('new-reg'), new_reg)

    def query_registration(self, regr: messages.RegistrationResource
                           ) -> messages.RegistrationResource:
        """Query server about registration.

        The draft API has no GET on registrations, an update without
        changes is posted instead.

        :param messages.RegistrationResource regr: Existing Registration
            Resource.

        """
        return self._send_registration(regr.uri, messages.UpdateRegistration(), regr)

    def update_registration(self, regr: messages.RegistrationResource,
                            update: messages.UpdateRegistration
                            ) -> messages.RegistrationResource:
        """Update registration.

        :param messages.RegistrationResource regr: Registration Resource.
        :param messages.UpdateRegistration update: Fields to send.

        :returns: Updated Registration Resource.
        :rtype: `.RegistrationResource`

        """
        return self._send_registration(regr.uri, update, regr)

    def _send_registration(self, url: str, body: messages.Registration,
                           old: Optional[messages.RegistrationResource] = None
                           ) -> messages.RegistrationResource:
        response = self.net.post(url, body)
        old_uri = old.uri if old is not None else ''
        location = response.headers.get('Location', '')
        if not location or old_uri == url:
            location = old_uri
        if not location:
            raise errors.MissingHeader(
                'Invalid registration location', url=url,
                status=response.status_code, payload=body.json_dumps())
        regr = messages.RegistrationResource(
            body=_decode(messages.Registration, response, url, body),
            uri=location,
            terms_of_service=links(response).get('terms-of-service'))
        if old is not None:
            regr = regr.update(recovery_token=old.recovery_token, name=old.name,
                               directory=old.directory)
        return regr

    def request_authorization(self, dns: str) -> messages.AuthorizationResource:
        """Request a new authorization for a DNS name.

        :param str dns: Domain name.

        :raises .MissingHeader: if the server didn't provide a Location.

        :rtype: `.AuthorizationResource`

        """
        url = self._endpoint('new-authz')
        body = messages.NewAuthorization.from_dns(dns)
        response = self.net.post(url, body)
        location = response.headers.get('Location')
        if not location:
            raise errors.MissingHeader(
                'Creating authorization failed: missing Location', url=url,
                status=response.status_code, payload=body.json_dumps())
        return messages.AuthorizationResource(
            body=_decode(messages.Authorization, response, url, body),
            uri=location)

    def fetch_authorization(self, uri: str) -> messages.Authorization:
        """Retrieve the authorization body at ``uri``.

        :rtype: `.Authorization`

        """
        return _decode(messages.Authorization, self.net.get(uri), uri)

    def fetch_authorization_list(self, regr: messages.RegistrationResource) -> List[str]:
        """URIs of all authorizations the server keeps for ``regr``.

        Empty if the registration doesn't advertise an ``authorizations``
        URL.

        :raises .ProtocolError: if the list doesn't decode.

        """
        url = regr.body.authorizations
        if not url:
            return []
        return list(_decode(messages.AuthorizationList, self.net.get(url), url).authorizations)

    def poll(self, authzr: messages.AuthorizationResource
             ) -> messages.AuthorizationResource:
        """Refresh an authorization, keeping local data.

        :param messages.AuthorizationResource authzr:

        :returns: Updated Authorization Resource.
        :rtype: `.AuthorizationResource`

        """
        return authzr.update(body=self.fetch_authorization(authzr.uri))

    def answer_challenge(self, chall: challenges.Challenge,
                         response: challenges.ChallengeResponse) -> requests.Response:
        """Answer challenge.

        :param challenges.Challenge chall: Challenge being answered.
        :param challenges.ChallengeResponse response: Corresponding
            Challenge response

        :returns: Raw server response.

        """
        if not chall.uri:
            raise errors.ProtocolError('Challenge has no URI')
        return self.net.post(chall.uri, response, response_content_type=None)

    def request_issuance(self, csr: bytes) -> messages.CertificateResource:
        """Request a certificate.

        :param bytes csr: DER-encoded certificate signing request.

        :raises .MissingHeader: if the response lacks a Location.
        :raises .UnexpectedContentType: unless the server sends
            ``application/pkix-cert``.

        :rtype: `.CertificateResource`

        """
        url = self._endpoint('new-cert')
        body = messages.CertificateRequest(csr=csr)
        response = self.net.post(url, body, accept=constants.PKIX_CERT_CONTENT_TYPE,
                                 response_content_type=None)
        location = response.headers.get('Location')
        if not location:
            raise errors.MissingHeader(
                'Requesting certificate failed: missing Location', url=url,
                status=response.status_code, payload=body.json_dumps())
        return self._certr_from_response(response, location, body)

    def fetch_certificate(self, uri: str) -> messages.CertificateResource:
        """Retrieve the certificate at ``uri``.

        :rtype: `.CertificateResource`

        """
        response = self.net.get(
            uri, content_type=None,
            headers={'Accept': constants.PKIX_CERT_CONTENT_TYPE})
        return self._certr_from_response(response, uri)

    def fetch_certificate_list(self, regr: messages.RegistrationResource) -> List[str]:
        """URIs of all certificates issued to ``regr``, see
        `fetch_authorization_list`."""
        url = regr.body.certificates
        if not url:
            return []
        return list(_decode(messages.CertificateList, self.net.get(url), url).certificates)

    @classmethod
    def _certr_from_response(cls, response: requests.Response, uri: str,
                             body: Optional[jose.JSONDeSerializable] = None
                             ) -> messages.CertificateResource:
        content_type = response.headers.get('Content-Type')
        if content_type != constants.PKIX_CERT_CONTENT_TYPE:
            raise errors.UnexpectedContentType(
                'Unexpected response Content-Type: {0}, expected {1}'.format(
                    content_type, constants.PKIX_CERT_CONTENT_TYPE),
                url=uri, status=response.status_code,
                payload=body.json_dumps() if body is not None else None)
        try:
            cert = crypto_util.load_der_certificate(response.content)
        except errors.CryptoError as error:
            raise errors.ProtocolError(
                "Couldn't parse returned certificate: {0}".format(error),
                url=uri, status=response.status_code)
        return messages.CertificateResource(
            body=cert, uri=uri, cert_chain_uri=links(response).get('up'))

    def revoke(self, cert: messages.CertificateResource) -> None:
        """Revoke certificate.

        :param .CertificateResource cert:

        :raises .UnexpectedStatus: If the server didn't answer exactly
            HTTP OK.

        """
        url = self._endpoint('revoke-cert')
        der = cert.body.public_bytes(Encoding.DER)  # pylint: disable=no-member
        body = messages.Revocation(certificate=der)
        response = self.net.post(url, body, response_content_type=None)
        if response.status_code != http_client.OK:
            raise errors.UnexpectedStatus(
                'Successful revocation must return HTTP OK status', url=url,
                status=response.status_code, reason=response.reason,
                payload=body.json_dumps())


def _decode(cls: Type[GenericJSONObject], response: requests.Response, url: str,
            body: Optional[jose.JSONDeSerializable] = None) -> GenericJSONObject:
    """Decode a JSON response body into ``cls``.

    :raises .ProtocolError: if the body is not a JSON object or doesn't
        decode.

    """
    payload = body.json_dumps() if body is not None else None
    try:
        jobj = response.json()
        if not isinstance(jobj, dict):
            raise errors.ProtocolError(
                'Expected a JSON object, got {0}'.format(type(jobj).__name__),
                url=url, status=response.status_code, payload=payload)
        return cls.from_json(jobj)
    except (ValueError, jose.DeserializationError) as error:
        raise errors.ProtocolError(
            'Failed decoding response: {0}'.format(error), url=url,
            status=response.status_code, payload=payload)


class ClientNetwork:
    """Wrapper around requests that signs POSTs for authentication.

    Also adds user agent, and handles Content-Type. A fresh nonce is
    fetched with a HEAD request to the target URL right before every
    signed POST.

    """
    JSON_CONTENT_TYPE = constants.JSON_CONTENT_TYPE
    JOSE_CONTENT_TYPE = constants.JOSE_CONTENT_TYPE
    JSON_ERROR_CONTENT_TYPE = constants.JSON_ERROR_CONTENT_TYPE
    REPLAY_NONCE_HEADER = constants.REPLAY_NONCE_HEADER

    def __init__(self, key: Optional[jose.JWK] = None,
                 alg: Optional[jose.JWASignature] = None, verify_ssl: bool = True,
                 user_agent: str = constants.USER_AGENT,
                 timeout: int = constants.DEFAULT_NETWORK_TIMEOUT) -> None:
        """Initialize.

        :param josepy.JWK key: Account private key. Only needed for `post`.
        :param josepy.JWASignature alg: Algorithm to use in signing JWS,
            derived from ``key`` by default.
        :param bool verify_ssl: Whether to verify certificates on SSL connections.
        :param str user_agent: String to send as User-Agent header.
        :param int timeout: Timeout for requests.

        """
        self.key = key
        if alg is None and key is not None:
            alg = jws.signature_algorithm(key)
        self.alg = alg
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent
        self.session = requests.Session()
        self._default_timeout = timeout
        adapter = HTTPAdapter()

        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def __del__(self) -> None:
        # Try to close the session, but don't show exceptions to the
        # user if the call to close() fails.
        try:
            self.session.close()
        except Exception:  # pylint: disable=broad-except
            pass

    def with_key(self, key: jose.JWK) -> 'ClientNetwork':
        """New network with the same settings, signing with ``key``."""
        return type(self)(key, verify_ssl=self.verify_ssl, user_agent=self.user_agent,
                          timeout=self._default_timeout)

    def _wrap_in_jws(self, obj: jose.JSONDeSerializable, nonce: bytes) -> str:
        """Wrap `JSONDeSerializable` object in JWS.

        :param josepy.JSONDeSerializable obj:
        :param bytes nonce:
        :rtype: str

        """
        if self.key is None:
            raise errors.CryptoError('No account key to sign the request with')
        jobj = obj.json_dumps(indent=2).encode()
        logger.debug('JWS payload:\n%s', jobj)
        try:
            return jws.JWS.sign(jobj, key=self.key, alg=self.alg,
                                nonce=nonce).json_dumps(indent=2)
        except (ValueError, TypeError, jose.Error) as error:
            raise errors.CryptoError('Signing request failed: {0}'.format(error))

    @classmethod
    def _check_response(cls, response: requests.Response, url: str,
                        content_type: Optional[str] = None,
                        payload: Optional[str] = None) -> requests.Response:
        """Check response content and its type.

        .. note::
           Checking is not strict: wrong server response ``Content-Type``
           HTTP header is ignored if response is an expected JSON object.

        :param str content_type: Expected Content-Type response header.
            If JSON is expected and not present in server response, this
            function will raise an error. Otherwise, wrong Content-Type
            is ignored, but logged.

        :raises .ProtocolError: on a non-2xx status, carrying the HTTP
            Problem document if the server sent one.

        """
        response_ct = response.headers.get('Content-Type')
        # Strip parameters from the media-type (rfc2616#section-3.7)
        if response_ct:
            response_ct = response_ct.split(';')[0].strip()

        if not 200 <= response.status_code < 300:
            problem = None
            try:
                jobj = response.json()
            except ValueError:
                jobj = None
            if isinstance(jobj, dict):
                if response_ct != cls.JSON_ERROR_CONTENT_TYPE:
                    logger.debug(
                        'Ignoring wrong Content-Type (%r) for JSON Error',
                        response_ct)
                try:
                    problem = messages.Error.from_json(jobj)
                except jose.DeserializationError as error:
                    logger.debug('Could not decode error document: %s', error)
            raise errors.ProtocolError(
                'Request failed', url=url, status=response.status_code,
                reason=response.reason, payload=payload, problem=problem)

        if content_type == cls.JSON_CONTENT_TYPE:
            try:
                response.json()
            except ValueError:
                raise errors.UnexpectedContentType(
                    'Unexpected response Content-Type: {0}'.format(response_ct),
                    url=url, status=response.status_code, payload=payload)
            if response_ct != cls.JSON_CONTENT_TYPE:
                logger.debug(
                    'Ignoring wrong Content-Type (%r) for JSON decodable '
                    'response', response_ct)

        return response

    def _send_request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send HTTP request.

        Makes sure that `verify_ssl` is respected. Logs request and
        response (with headers). For allowed parameters please see
        `requests.request`.

        :param str method: method for the new `requests.Request` object
        :param str url: URL for the new `requests.Request` object

        :raises .TransportError: in case of any network problem

        :returns: HTTP Response
        :rtype: `requests.Response`

        """
        if method == "POST":
            logger.debug('Sending POST request to %s:\n%s',
                         url, kwargs['data'])
        else:
            logger.debug('Sending %s request to %s.', method, url)
        kwargs['verify'] = self.verify_ssl
        kwargs.setdefault('headers', {})
        kwargs['headers'].setdefault('User-Agent', self.user_agent)
        kwargs.setdefault('timeout', self._default_timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as error:
            raise errors.TransportError(url, error)

        # Binary bodies (certificates) are logged base64 encoded.
        if "Accept" in kwargs["headers"]:
            debug_content: Any = base64.b64encode(response.content)
        else:
            response.encoding = "utf-8"
            debug_content = response.text
        logger.debug('Received response:\nHTTP %d\n%s\n\n%s',
                     response.status_code,
                     "\n".join("{0}: {1}".format(k, v)
                               for k, v in response.headers.items()),
                     debug_content)
        return response

    def head(self, url: str, **kwargs: Any) -> requests.Response:
        """Send HEAD request without checking the response.

        Only the headers (``Replay-Nonce``) are of interest, the status
        code is ignored.

        """
        return self._send_request('HEAD', url, **kwargs)

    def get(self, url: str, content_type: Optional[str] = JSON_CONTENT_TYPE,
            **kwargs: Any) -> requests.Response:
        """Send GET request and check response."""
        return self._check_response(
            self._send_request('GET', url, **kwargs), url, content_type=content_type)

    def _get_nonce(self, url: str) -> bytes:
        logger.debug('Requesting fresh nonce')
        response = self.head(url)
        if self.REPLAY_NONCE_HEADER not in response.headers:
            raise errors.MissingNonce(url, response.headers)
        nonce = response.headers[self.REPLAY_NONCE_HEADER]
        try:
            decoded_nonce = jws.Header._fields['nonce'].decode(nonce)  # pylint: disable=protected-access
        except jose.DeserializationError as error:
            raise errors.BadNonce(url, nonce, error)
        logger.debug('Using nonce: %s', nonce)
        return decoded_nonce

    def post(self, url: str, obj: jose.JSONDeSerializable,
             content_type: str = JOSE_CONTENT_TYPE, accept: Optional[str] = None,
             response_content_type: Optional[str] = JSON_CONTENT_TYPE,
             **kwargs: Any) -> requests.Response:
        """POST object wrapped in `.JWS` and check response.

        :param str url: Target URL.
        :param obj: Payload.
        :param str content_type: Declared request Content-Type.
        :param str accept: ``Accept`` header, if any.
        :param str response_content_type: Expected response Content-Type,
            see `_check_response`.

        :raises .MissingNonce: if the pre-flight request returned no nonce;
            nothing is signed or sent in that case.

        """
        nonce = self._get_nonce(url)
        data = self._wrap_in_jws(obj, nonce)
        headers = {'Content-Type': content_type}
        if accept is not None:
            headers['Accept'] = accept
        kwargs.setdefault('headers', headers)
        response = self._send_request('POST', url, data=data, **kwargs)
        return self._check_response(
            response, url, content_type=response_content_type,
            payload=obj.json_dumps())
