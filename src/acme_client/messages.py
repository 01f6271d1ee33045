"""ACME protocol messages and the local records built from them."""
from collections.abc import Hashable
import datetime
from typing import Any
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional
from typing import Tuple

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
import josepy as jose

from acme_client import challenges
from acme_client import errors
from acme_client import fields

ERROR_PREFIX = "urn:acme:error:"

ERROR_CODES = {
    'badCSR': 'The CSR is unacceptable (e.g., due to a short key)',
    'badNonce': 'The client sent an unacceptable anti-replay nonce',
    'connection': ('The server could not connect to the client to verify the'
                   ' domain'),
    'dnssec': 'The server could not validate a DNSSEC signed domain',
    'malformed': 'The request message was malformed',
    'rateLimited': 'There were too many requests of a given type',
    'serverInternal': 'The server experienced an internal error',
    'tls': 'The server experienced a TLS error during domain verification',
    'unauthorized': 'The client lacks sufficient authorization',
    'unknownHost': 'The server could not resolve a domain name',
}

ERROR_TYPE_DESCRIPTIONS = {
    ERROR_PREFIX + name: desc for name, desc in ERROR_CODES.items()}


class Error(jose.JSONObjectWithFields, errors.Error):
    """ACME problem document.

    https://datatracker.ietf.org/doc/html/rfc7807

    :ivar str typ:
    :ivar str title:
    :ivar str detail:

    """
    typ: str = jose.field('type', omitempty=True, default='about:blank')
    title: str = jose.field('title', omitempty=True)
    detail: str = jose.field('detail', omitempty=True)

    @property
    def description(self) -> Optional[str]:
        """Hardcoded error description based on its type.

        :returns: Description if standard ACME error or ``None``.
        :rtype: str

        """
        return ERROR_TYPE_DESCRIPTIONS.get(self.typ)

    def __setattr__(self, name: str, value: Any) -> None:
        return object.__setattr__(self, name, value)

    def __str__(self) -> str:
        return b' :: '.join(
            part.encode('ascii', 'backslashreplace') for part in
            (self.typ, self.description, self.detail, self.title)
            if part is not None).decode()


class _Constant(jose.JSONDeSerializable, Hashable):
    """ACME constant."""
    __slots__ = ('name',)
    POSSIBLE_NAMES: Dict[str, '_Constant'] = NotImplemented

    def __init__(self, name: str) -> None:
        super().__init__()
        self.POSSIBLE_NAMES[name] = self  # pylint: disable=unsupported-assignment-operation
        self.name = name

    def to_partial_json(self) -> str:
        return self.name

    @classmethod
    def from_json(cls, jobj: str) -> '_Constant':
        if jobj not in cls.POSSIBLE_NAMES:  # pylint: disable=unsupported-membership-test
            raise jose.DeserializationError(f'{cls.__name__} not recognized')
        return cls.POSSIBLE_NAMES[jobj]

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.name})'

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, type(self)) and other.name == self.name

    def __hash__(self) -> int:
        return hash((self.__class__, self.name))


class IdentifierType(_Constant):
    """ACME identifier type."""
    POSSIBLE_NAMES: Dict[str, _Constant] = {}


IDENTIFIER_FQDN = IdentifierType('dns')


class Identifier(jose.JSONObjectWithFields):
    """ACME identifier.

    :ivar IdentifierType typ:
    :ivar str value:

    """
    typ: IdentifierType = jose.field('type', decoder=IdentifierType.from_json)
    value: str = jose.field('value')


# Authorization status values. Pending is the empty string.
STATUS_PENDING = ''
STATUS_UNKNOWN = 'unknown'
STATUS_PROCESSING = 'processing'
STATUS_VALID = 'valid'
STATUS_INVALID = 'invalid'
STATUS_REVOKED = 'revoked'


def status_name(status: str) -> str:
    """Human readable name of an authorization status."""
    return status or fields.STATUS_WIRE_PENDING


class Directory(jose.JSONObjectWithFields):
    """Directory of the five protocol endpoints.

    Endpoints may be looked up by attribute (``directory.new_authz``) or
    by their wire name (``directory['new-authz']``). Endpoints missing
    from the server document are empty strings.

    """
    new_reg: str = jose.field('new-reg', omitempty=True, default='')
    recover_reg: str = jose.field('recover-reg', omitempty=True, default='')
    new_authz: str = jose.field('new-authz', omitempty=True, default='')
    new_cert: str = jose.field('new-cert', omitempty=True, default='')
    revoke_cert: str = jose.field('revoke-cert', omitempty=True, default='')

    def __getitem__(self, name: str) -> str:
        for slot, field in self._fields.items():
            if name in (slot, field.json_name):
                return getattr(self, slot)
        raise KeyError(f'Directory field "{name}" not found')


class Resource(jose.JSONObjectWithFields):
    """ACME Resource.

    :ivar acme_client.messages.ResourceBody body: Resource body.

    """
    body: "ResourceBody" = jose.field('body')


class ResourceWithURI(Resource):
    """ACME Resource with URI.

    :ivar str uri: Location of the resource.

    """
    uri: str = jose.field('uri')


class ResourceBody(jose.JSONObjectWithFields):
    """ACME Resource Body."""


class DirectoryResource(ResourceWithURI):
    """Cached directory.

    :ivar str uri: Root URL the directory was fetched from.
    :ivar Directory body:

    """
    body: Directory = jose.field('body', decoder=Directory.from_json)


class Registration(ResourceBody):
    """Registration Resource Body.

    :ivar tuple contact: Contact information, `tuple` of URI-form `str`
        (``mailto:``, ``tel:``).
    :ivar str agreement: Agreed terms of service URL.
    :ivar str authorizations:
    :ivar str certificates:

    """
    resource: str = fields.resource('reg')
    contact: Tuple[str, ...] = jose.field('contact', omitempty=True, default=())
    agreement: str = jose.field('agreement', omitempty=True)
    authorizations: str = jose.field('authorizations', omitempty=True)
    certificates: str = jose.field('certificates', omitempty=True)


class NewRegistration(Registration):
    """New registration."""
    resource: str = fields.resource('new-reg')


class UpdateRegistration(Registration):
    """Update registration."""


def _decode_uri_list(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(uri, str) for uri in value):
        raise jose.DeserializationError('Expected a list of URIs, got {0!r}'.format(value))
    return tuple(value)


class AuthorizationList(jose.JSONObjectWithFields):
    """List served at `Registration.authorizations`."""
    authorizations: Tuple[str, ...] = jose.field(
        'authorizations', omitempty=True, default=(), decoder=_decode_uri_list)


class CertificateList(jose.JSONObjectWithFields):
    """List served at `Registration.certificates`."""
    certificates: Tuple[str, ...] = jose.field(
        'certificates', omitempty=True, default=(), decoder=_decode_uri_list)


class RegistrationResource(ResourceWithURI):
    """Registration Resource.

    ``name``, ``recovery_token`` and ``directory`` are local and never
    sent to the server.

    :ivar acme_client.messages.Registration body:
    :ivar str terms_of_service: URL for the CA TOS (``terms-of-service``
        link relation).
    :ivar str recovery_token:
    :ivar str name: Local unique alias.
    :ivar str directory: Root URL of the directory this registration
        belongs to.

    """
    body: Registration = jose.field('body', decoder=Registration.from_json)
    terms_of_service: str = jose.field('terms_of_service', omitempty=True)
    recovery_token: str = jose.field('recovery_token', omitempty=True)
    name: str = jose.field('name', omitempty=True)
    directory: str = jose.field('directory', omitempty=True)


class Authorization(ResourceBody):
    """Authorization Resource Body.

    :ivar acme_client.messages.Identifier identifier:
    :ivar tuple challenges: `tuple` of `.challenges.Challenge`
    :ivar tuple combinations: `tuple` of `tuple` of `int`
    :ivar str status: ``""`` while pending.
    :ivar datetime.datetime expires:

    """
    resource: str = fields.resource('authz')
    identifier: Identifier = jose.field('identifier', decoder=Identifier.from_json, omitempty=True)
    status: str = fields.status()
    challenges: Tuple['challenges.Challenge', ...] = jose.field(
        'challenges', omitempty=True, default=())
    combinations: Tuple[Tuple[int, ...], ...] = jose.field(
        'combinations', omitempty=True, default=())
    expires: datetime.datetime = fields.rfc3339('expires', omitempty=True)

    # Mypy does not understand the josepy magic happening here, and falsely claims
    # that challenges is redefined. Let's ignore the type check here.
    @challenges.decoder  # type: ignore
    def challenges(value: List[Dict[str, Any]]) -> Tuple['challenges.Challenge', ...]:  # type: ignore[misc]  # pylint: disable=no-self-argument,missing-function-docstring
        return tuple(challenges.Challenge.from_json(chall) for chall in value)

    @classmethod
    def from_dns(cls, dns: str, **kwargs: Any) -> 'Authorization':
        """Create authorization body for a DNS identifier."""
        return cls(identifier=Identifier(typ=IDENTIFIER_FQDN, value=dns), **kwargs)

    @property
    def dns(self) -> Optional[str]:
        """DNS name being authorized."""
        if self.identifier is None:
            return None
        return self.identifier.value  # pylint: disable=no-member


class NewAuthorization(Authorization):
    """New authorization."""
    resource: str = fields.resource('new-authz')


class _ChallengesDataField(jose.Field):
    """Proof material per challenge URI.

    Always emitted, as ``{}`` when empty; an absent member decodes to an
    empty mapping.

    """

    def omit(self, value: Any) -> bool:
        return False

    @classmethod
    def default_decoder(cls, value: Any) -> Dict[str, challenges.ChallengeResponse]:
        if not isinstance(value, Mapping):
            raise jose.DeserializationError(
                'Expected a mapping of challenge data, got {0!r}'.format(value))
        return {uri: challenges.ChallengeResponse.from_json(data)
                for uri, data in value.items()}

    @classmethod
    def default_encoder(cls, value: Any) -> Dict[str, Any]:
        return {uri: response.to_partial_json()
                for uri, response in (value or {}).items()}


class AuthorizationResource(ResourceWithURI):
    """Authorization Resource.

    :ivar acme_client.messages.Authorization body:
    :ivar dict challenges_data: Previously derived proof material,
        challenge URI → `.challenges.ChallengeResponse`.
    :ivar str registration: Name of the owning registration.

    """
    body: Authorization = jose.field('body', decoder=Authorization.from_json)
    challenges_data: Dict[str, challenges.ChallengeResponse] = _ChallengesDataField(
        'challenges_data', omitempty=True)
    registration: str = jose.field('registration', omitempty=True)

    def __init__(self, **kwargs: Any) -> None:
        if kwargs.get('challenges_data') is None:
            kwargs['challenges_data'] = {}
        super().__init__(**kwargs)

    def with_challenge_data(self, uri: str,
                            response: challenges.ChallengeResponse) -> 'AuthorizationResource':
        """Copy of this resource with ``response`` stored for ``uri``."""
        data = dict(self.challenges_data)
        data[uri] = response
        return self.update(challenges_data=data)

    def find_challenge(self, uri: str) -> Optional[int]:
        """Index of the challenge with ``uri``, if any."""
        for index, chall in enumerate(self.body.challenges):  # pylint: disable=no-member
            if chall.uri == uri:
                return index
        return None

    def __hash__(self) -> int:
        return hash(self.uri)



def _encode_cert(cert: x509.Certificate) -> str:
    return jose.encode_b64jose(cert.public_bytes(Encoding.DER))


def _decode_cert(b64der: str) -> x509.Certificate:
    try:
        return x509.load_der_x509_certificate(jose.decode_b64jose(b64der))
    except ValueError as error:
        raise jose.DeserializationError(error)


class CertificateRequest(jose.JSONObjectWithFields):
    """ACME new-cert request.

    :ivar bytes csr: DER-encoded certificate signing request.

    """
    resource: str = fields.resource('new-cert')
    csr: bytes = jose.field(
        'csr', decoder=jose.decode_b64jose, encoder=jose.encode_b64jose)


class Revocation(jose.JSONObjectWithFields):
    """Revocation message.

    :ivar bytes certificate: DER-encoded certificate.

    """
    resource: str = fields.resource('revoke-cert')
    certificate: bytes = jose.field(
        'certificate', decoder=jose.decode_b64jose, encoder=jose.encode_b64jose)


class CertificateResource(ResourceWithURI):
    """Certificate Resource.

    :ivar x509.Certificate body: `x509.Certificate`
    :ivar str name: Local alias, unique per registration.
    :ivar bool revoked:
    :ivar str cert_chain_uri: URI found in the 'up' ``Link`` header
    :ivar bytes private_key: PEM private key, if known.
    :ivar str registration: Name of the owning registration.

    """
    body: x509.Certificate = jose.field(
        'body', decoder=_decode_cert, encoder=_encode_cert)
    name: str = jose.field('name', omitempty=True)
    revoked: bool = jose.field('revoked', omitempty=True, default=False)
    cert_chain_uri: str = jose.field('cert_chain_uri', omitempty=True)
    private_key: Optional[bytes] = jose.field(
        'private_key', omitempty=True,
        decoder=lambda s: s.encode("utf-8"),
        encoder=lambda b: b.decode("utf-8"))
    registration: str = jose.field('registration', omitempty=True)

    def __hash__(self) -> int:
        return hash(self.uri)
