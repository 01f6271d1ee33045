"""Crypto utilities."""
import contextlib
from datetime import datetime, timedelta
import logging
import socket
from typing import List
from typing import Optional
from typing import Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import Encoding
import josepy as jose
from OpenSSL import SSL
import pytz

from acme_client import constants
from acme_client import errors

logger = logging.getLogger(__name__)

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]

_CURVES = {
    'P-256': ec.SECP256R1,
    'P-384': ec.SECP384R1,
    'P-521': ec.SECP521R1,
}

_DEFAULT_SSL_METHOD = SSL.SSLv23_METHOD


def generate_private_key(key_type: str = constants.DEFAULT_KEY_TYPE,
                         rsa_key_size: int = constants.DEFAULT_RSA_KEY_SIZE,
                         elliptic_curve: str = constants.DEFAULT_ELLIPTIC_CURVE
                         ) -> PrivateKey:
    """Generate a new account or certificate private key.

    :param str key_type: ``"rsa"`` or ``"ecdsa"``.
    :param int rsa_key_size: RSA modulus size, between 2048 and 4096.
    :param str elliptic_curve: One of ``P-256``, ``P-384``, ``P-521``.

    :raises .CryptoError: for unsupported parameters.

    """
    if key_type == 'rsa':
        if not 2048 <= rsa_key_size <= 4096:
            raise errors.CryptoError(
                'Unsupported RSA key size: {0}'.format(rsa_key_size))
        return rsa.generate_private_key(public_exponent=65537, key_size=rsa_key_size)
    if key_type == 'ecdsa':
        try:
            curve = _CURVES[elliptic_curve]
        except KeyError:
            raise errors.CryptoError(
                'Unsupported elliptic curve: {0}'.format(elliptic_curve))
        return ec.generate_private_key(curve())
    raise errors.CryptoError('Unsupported key type: {0}'.format(key_type))


def private_key_to_jwk(private_key: PrivateKey) -> jose.JWK:
    """Wrap a cryptography private key into the matching `josepy.JWK`."""
    if isinstance(private_key, rsa.RSAPrivateKey):
        return jose.JWKRSA(key=private_key)
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return jose.JWKEC(key=private_key)
    raise errors.CryptoError(
        'Unsupported key type: {0}'.format(type(private_key).__name__))


def dump_private_key(private_key: PrivateKey, password: Optional[bytes] = None) -> bytes:
    """Serialize a private key to PEM (PKCS#8).

    :param bytes password: Encrypt the PEM with this password, if given.
        An empty password means no encryption.

    """
    if password:
        encryption: serialization.KeySerializationEncryption = (
            serialization.BestAvailableEncryption(password))
    else:
        encryption = serialization.NoEncryption()
    return private_key.private_bytes(
        encoding=Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption)


def load_private_key(data: bytes, password: Optional[bytes] = None) -> PrivateKey:
    """Load a PEM private key.

    :param bytes password: Password of an encrypted PEM. Empty and
        ``None`` both mean the PEM is not encrypted.

    :raises .CryptoError: if the key can't be decrypted or parsed.

    """
    try:
        key = serialization.load_pem_private_key(data, password=password or None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as error:
        raise errors.CryptoError('Unable to load private key: {0}'.format(error))
    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise errors.CryptoError('Unsupported key type: {0}'.format(type(key).__name__))
    return key


MAX_CN_LENGTH = 64
"""Upper bound of a subject common name (RFC 5280 ``ub-common-name``)."""


def _subject(domains: List[str]) -> x509.Name:
    # Longer names (e.g. dvsni SNI names) only go to subjectAltName
    if not domains:
        raise errors.CryptoError('At least one domain is required')
    if len(domains[0]) > MAX_CN_LENGTH:
        return x509.Name([])
    return x509.Name([x509.NameAttribute(x509.NameOID.COMMON_NAME, domains[0])])


def make_csr(private_key: PrivateKey, domains: List[str]) -> bytes:
    """Generate a CSR containing ``domains`` as subjectAltNames.

    The first domain also becomes the subject common name if it fits.

    :returns: DER-encoded Certificate Signing Request.
    :rtype: bytes

    :raises .CryptoError: without domains or if a domain is invalid.

    """
    subject = _subject(domains)
    try:
        csr = (
            x509.CertificateSigningRequestBuilder()
            .subject_name(subject)
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
                critical=False,
            )
            .sign(private_key, hashes.SHA256())
        )
    except (ValueError, TypeError) as error:
        raise errors.CryptoError('Unable to create CSR: {0}'.format(error))
    return csr.public_bytes(Encoding.DER)


# Helper function that can be mocked in unit tests
def _now() -> datetime:
    return datetime.now(pytz.utc)


def make_self_signed_cert(private_key: PrivateKey, domains: List[str],
                          not_before: Optional[datetime] = None,
                          validity: Optional[timedelta] = None) -> x509.Certificate:
    """Generate new self-signed certificate.

    All of the domains go to the ``subjectAltName`` extension, the first
    one is also the subject CN if it fits.

    :param validity: Duration for which the cert will be valid. Defaults
        to 1 week.
    :type validity: `datetime.timedelta`

    :raises .CryptoError: without domains or if a domain is invalid.

    """
    name = _subject(domains)
    if not_before is None:
        not_before = _now()
    if validity is None:
        validity = timedelta(days=7)
    try:
        return (
            x509.CertificateBuilder()
            .serial_number(x509.random_serial_number())
            .subject_name(name)
            .issuer_name(name)
            .not_valid_before(not_before)
            .not_valid_after(not_before + validity)
            .public_key(private_key.public_key())
            .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
                critical=False)
            .sign(private_key, hashes.SHA256())
        )
    except (ValueError, TypeError) as error:
        raise errors.CryptoError('Unable to create certificate: {0}'.format(error))


def load_der_certificate(data: bytes) -> x509.Certificate:
    """Parse a DER certificate.

    :raises .CryptoError: if ``data`` is not a valid certificate.

    """
    try:
        return x509.load_der_x509_certificate(data)
    except ValueError as error:
        raise errors.CryptoError('Unable to parse certificate: {0}'.format(error))


def load_pem_certificate(data: bytes) -> x509.Certificate:
    """Parse a PEM certificate.

    :raises .CryptoError: if ``data`` is not a valid certificate.

    """
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as error:
        raise errors.CryptoError('Unable to parse certificate: {0}'.format(error))


def get_dns_names(cert: x509.Certificate) -> List[str]:
    """DNS subjectAltNames of ``cert`` (empty without the extension)."""
    try:
        san_ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return san_ext.value.get_values_for_type(x509.DNSName)


def not_valid_after(cert: x509.Certificate) -> datetime:
    """Aware expiry datetime of ``cert``."""
    return cert.not_valid_after_utc


def probe_sni(name: bytes, host: bytes, port: int = 443, timeout: int = 300,
              method: int = _DEFAULT_SSL_METHOD) -> x509.Certificate:
    """Probe SNI server for SSL certificate.

    The server certificate is not validated.

    :param bytes name: Byte string to send as the server name in the
        client hello message.
    :param bytes host: Host to connect to.
    :param int port: Port to connect to.
    :param int timeout: Timeout in seconds.
    :param method: See `OpenSSL.SSL.Context` for allowed values.

    :raises .TransportError: In case of any problems.

    :returns: SSL certificate presented by the server.
    :rtype: cryptography.x509.Certificate

    """
    context = SSL.Context(method)
    context.set_timeout(timeout)
    url = '{0}:{1}'.format(host.decode(), port)

    try:
        logger.debug("Attempting to connect to %s.", url)
        sock = socket.create_connection((host.decode(), port))
    except socket.error as error:
        raise errors.TransportError(url, error)

    with contextlib.closing(sock) as client:
        client_ssl = SSL.Connection(context, client)
        client_ssl.set_connect_state()
        client_ssl.set_tlsext_host_name(name)
        try:
            client_ssl.do_handshake()
            client_ssl.shutdown()
        except SSL.Error as error:
            raise errors.TransportError(url, error)
    cert = client_ssl.get_peer_certificate()
    if cert is None:
        raise errors.TransportError(url, ValueError('no peer certificate'))
    return cert.to_cryptography()
