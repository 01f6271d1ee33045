"""ACME Identifier Validation Challenges."""
import hashlib
import json
import logging
from typing import Any
from typing import cast
from typing import Dict
from typing import Mapping
from typing import Optional
from typing import Type
from typing import TypeVar
from typing import Union

from cryptography.hazmat.primitives import hashes
import josepy as jose

from acme_client import fields
from acme_client import jws

logger = logging.getLogger(__name__)

GenericChallenge = TypeVar('GenericChallenge', bound='Challenge')


class Challenge(jose.TypedJSONObjectWithFields):
    # _fields_to_partial_json
    """ACME challenge.

    :ivar str status: Challenge status as sent by the server.
    :ivar str validated: Validation timestamp, empty unless validated.
    :ivar str uri: Location the response is posted to.

    """
    TYPES: Dict[str, Type['Challenge']] = {}

    automatable = False
    """Whether the client can answer without operator help."""

    resource: str = fields.resource('challenge')
    status: str = jose.field('status', omitempty=True, default='')
    validated: str = jose.field('validated', omitempty=True, default='')
    uri: str = jose.field('uri', omitempty=True, default='')

    @classmethod
    def from_json(cls: Type[GenericChallenge],
                  jobj: Mapping[str, Any]) -> Union[GenericChallenge, 'UnrecognizedChallenge']:
        try:
            return cast(GenericChallenge, super().from_json(jobj))
        except jose.UnrecognizedTypeError as error:
            logger.debug(error)
            return UnrecognizedChallenge.from_json(jobj)

    @property
    def is_validated(self) -> bool:
        """Has the server validated this challenge?"""
        return bool(self.validated)


class ChallengeResponse(jose.TypedJSONObjectWithFields):
    # _fields_to_partial_json
    """ACME challenge response, also persisted as proof material."""
    TYPES: Dict[str, Type['ChallengeResponse']] = {}

    resource: str = fields.resource('challenge')


class UnrecognizedChallenge(Challenge):
    """Unrecognized challenge.

    Challenge types this client does not know are kept verbatim so they
    survive a store/load round trip, but they cannot be answered.

    :ivar jobj: Original JSON decoded object.

    """
    jobj: Dict[str, Any]

    def __init__(self, jobj: Mapping[str, Any]) -> None:
        super().__init__(
            status=jobj.get('status', ''),
            validated=jobj.get('validated', ''),
            uri=jobj.get('uri', ''))
        object.__setattr__(self, "jobj", dict(jobj))

    @property
    def typ(self) -> str:  # type: ignore[override]
        """Type announced by the server."""
        return self.jobj.get(self.type_field_name, '')  # pylint: disable=no-member

    def to_partial_json(self) -> Dict[str, Any]:
        jobj = dict(self.jobj)  # pylint: disable=no-member
        jobj.setdefault('resource', self.resource)
        return jobj

    @classmethod
    def from_json(cls, jobj: Mapping[str, Any]) -> 'UnrecognizedChallenge':
        return cls(jobj)

    def __eq__(self, other: Any) -> bool:
        return (isinstance(other, UnrecognizedChallenge) and
                self.to_partial_json() == other.to_partial_json())

    def __hash__(self) -> int:
        return hash(json.dumps(self.to_partial_json(), sort_keys=True))


class _TokenChallenge(Challenge):
    """Challenge with token.

    :ivar str token:

    """
    token: str = jose.field('token', omitempty=True, default='')

    URI_ROOT_PATH = ".well-known/acme-challenge"
    """URI root path for the server provisioned resource."""

    @property
    def good_token(self) -> bool:
        """Is `token` safe to use as a path component?"""
        # pylint: disable=unsupported-membership-test
        return bool(self.token) and '..' not in self.token and '/' not in self.token

    @property
    def path(self) -> str:
        """Path (starting with '/') for provisioned resource.

        :rtype: str

        """
        return '/' + self.URI_ROOT_PATH + '/' + self.token

    def validation_url(self, domain: str, scheme: str = 'http') -> str:
        """URL of the provisioned resource for ``domain``."""
        return scheme + "://" + domain + self.path


@ChallengeResponse.register
class HTTP01Response(ChallengeResponse):
    """ACME http-01 challenge response.

    :param str key_authorization:

    """
    typ = "http-01"

    key_authorization: str = jose.field("keyAuthorization")

    PORT = 80
    """Verification port as defined by the protocol."""

    WHITESPACE_CUTSET = "\n\r\t "
    """Whitespace characters which should be ignored around the body."""

    CONTENT_TYPES = ('', 'text/plain')
    """Acceptable media types of the provisioned resource."""

    def check_document(self, content_type: Optional[str], body: str) -> Optional[str]:
        """Check a fetched resource.

        :returns: ``None`` if the document matches, otherwise the reason
            it does not.
        :rtype: str

        """
        media_type = (content_type or '').split(';')[0].strip()
        if media_type not in self.CONTENT_TYPES:
            return 'wrong content-type {0!r}, expected none or text/plain'.format(media_type)
        served = body.strip(self.WHITESPACE_CUTSET)
        if served != self.key_authorization:
            return "content {0!r} doesn't match expected data {1!r}".format(
                served, self.key_authorization)
        return None


@Challenge.register
class HTTP01(_TokenChallenge):
    """ACME http-01 challenge."""
    response_cls = HTTP01Response
    typ = response_cls.typ
    automatable = True

    thumbprint_hash_function = hashes.SHA256

    def key_authorization(self, account_key: jose.JWK) -> str:
        """Generate Key Authorization.

        :param JWK account_key:
        :rtype str:

        """
        return self.token + "." + jose.b64encode(
            account_key.thumbprint(
                hash_function=self.thumbprint_hash_function)).decode()

    def response(self, account_key: jose.JWK) -> HTTP01Response:
        """Generate response to the challenge.

        :param JWK account_key:

        :rtype: HTTP01Response

        """
        return self.response_cls(key_authorization=self.key_authorization(account_key))


@ChallengeResponse.register
class SimpleHTTPResponse(ChallengeResponse):
    """ACME simpleHttp challenge response.

    :param bool tls: Serve the resource over https.

    """
    typ = "simpleHttp"

    tls: bool = jose.field('tls', omitempty=True, default=True)

    CONTENT_TYPES = ('', 'application/jose+json')
    """Acceptable media types of the provisioned resource."""

    @property
    def scheme(self) -> str:
        """URL scheme of the provisioned resource."""
        return 'https' if self.tls else 'http'


@Challenge.register
class SimpleHTTP(_TokenChallenge):
    """ACME simpleHttp challenge."""
    response_cls = SimpleHTTPResponse
    typ = response_cls.typ

    def response(self, tls: bool = True) -> SimpleHTTPResponse:
        """Generate response to the challenge."""
        return self.response_cls(tls=tls)

    def validation_payload(self, tls: bool) -> Dict[str, Any]:
        """Object the provisioned resource has to sign."""
        return {'type': self.typ, 'tls': tls, 'token': self.token}

    def gen_validation(self, account_key: jose.JWK, tls: bool = True) -> jose.JWS:
        """Generate the signed document to provision.

        :param .JWK account_key: Private account key.

        :returns: `validation_payload` wrapped in `.JWS`
        :rtype: .JWS

        """
        return jws.JWS.sign(
            json.dumps(self.validation_payload(tls)).encode('utf-8'), account_key)

    def check_validation(self, validation: jose.JWS, account_public_key: jose.JWK,
                         tls: bool = True) -> bool:
        """Check a provisioned document.

        :param JWS validation:
        :param JWK account_public_key:
        :rtype: bool

        """
        if not validation.verify(key=account_public_key):
            logger.debug("Signature of simpleHttp document doesn't verify")
            return False
        try:
            payload = json.loads(validation.payload.decode('utf-8'))
        except ValueError as error:
            logger.debug("Checking validation for simpleHttp failed: %s", error)
            return False
        expected = self.validation_payload(tls)
        if payload != expected:
            logger.debug("simpleHttp payload %r doesn't match expected %r",
                         payload, expected)
            return False
        return True


@ChallengeResponse.register
class DVSNIResponse(ChallengeResponse):
    """ACME dvsni challenge response.

    :param JWS validation: Signature over ``{"type": "dvsni", "token": ...}``.

    """
    typ = "dvsni"

    DOMAIN_SUFFIX = ".acme.invalid"
    """Domain name suffix of the SNI name."""

    PORT = 443
    """Verification port as defined by the protocol."""

    validation: jose.JWS = jose.field("validation", decoder=jws.JWS.from_json)

    @property
    def z(self) -> str:
        """Hex SHA-256 of the third segment of the compact serialization."""
        signature = jose.b64encode(self.validation.signature.signature)  # pylint: disable=no-member
        return hashlib.sha256(signature).hexdigest()

    @property
    def z_domain(self) -> str:
        """SNI name the server has to answer for."""
        z = self.z
        return z[:32] + '.' + z[32:64] + self.DOMAIN_SUFFIX


@Challenge.register
class DVSNI(_TokenChallenge):
    """ACME dvsni challenge."""
    response_cls = DVSNIResponse
    typ = response_cls.typ

    def gen_validation(self, account_key: jose.JWK) -> jose.JWS:
        """Sign ``{"type": "dvsni", "token": ...}`` with the account key.

        :param .JWK account_key: Private account key.
        :rtype: .JWS

        """
        payload = {'type': self.typ, 'token': self.token}
        return jws.JWS.sign(json.dumps(payload).encode('utf-8'), account_key)

    def response(self, account_key: jose.JWK) -> DVSNIResponse:
        """Generate response to the challenge.

        Signatures are randomized, so every call yields a different SNI
        name; keep the response around.

        """
        return self.response_cls(validation=self.gen_validation(account_key))
