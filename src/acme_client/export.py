"""Password protected export and import of records.

JSON documents are encrypted with a key derived from the password
(PBKDF2-HMAC-SHA256 with a random salt, then Fernet) and armored as PEM
blocks. Private keys are PKCS#8 PEM encrypted with the password.
Public material (locations, names, certificates) stays readable.

"""
import base64
import binascii
import logging
import os
import textwrap
from typing import Optional

from cryptography.fernet import Fernet
from cryptography.fernet import InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.serialization import Encoding
import josepy as jose

from acme_client import account
from acme_client import crypto_util
from acme_client import errors
from acme_client import messages

logger = logging.getLogger(__name__)

JSON_REGISTRATION = 'ACME JSON REGISTRATION'
JSON_AUTHORIZATION = 'ACME JSON AUTHORIZATION'

SALT_SIZE = 16
KDF_ITERATIONS = 200000


def _derive_key(password: bytes, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt,
                     iterations=KDF_ITERATIONS)
    return base64.urlsafe_b64encode(kdf.derive(password))


def encrypt_block(block_type: str, data: bytes, password: bytes) -> str:
    """Encrypt ``data`` and armor it as a PEM block of ``block_type``."""
    salt = os.urandom(SALT_SIZE)
    token = Fernet(_derive_key(password, salt)).encrypt(data)
    body = base64.b64encode(salt + base64.urlsafe_b64decode(token)).decode('ascii')
    return '-----BEGIN {0}-----\n{1}\n-----END {0}-----\n'.format(
        block_type, '\n'.join(textwrap.wrap(body, 64)))


def decrypt_block(block_type: str, pem: str, password: bytes) -> bytes:
    """Reverse of `encrypt_block`.

    :raises .CryptoError: if the block is malformed, of another type, or
        the password is wrong.

    """
    begin = '-----BEGIN {0}-----'.format(block_type)
    end = '-----END {0}-----'.format(block_type)
    pem = pem.strip()
    if not pem.startswith(begin) or not pem.endswith(end):
        raise errors.CryptoError('Expected a PEM block of type {0}'.format(block_type))
    try:
        raw = base64.b64decode(''.join(pem[len(begin):-len(end)].split()), validate=True)
    except (binascii.Error, ValueError) as error:
        raise errors.CryptoError('Malformed {0} block: {1}'.format(block_type, error))
    salt, token = raw[:SALT_SIZE], base64.urlsafe_b64encode(raw[SALT_SIZE:])
    try:
        return Fernet(_derive_key(password, salt)).decrypt(token)
    except InvalidToken:
        raise errors.CryptoError('Unable to decrypt {0} block: wrong password?'.format(block_type))


class RegistrationExport(jose.JSONObjectWithFields):
    """Exported registration.

    :ivar str name:
    :ivar str location:
    :ivar str registration: Encrypted `.RegistrationResource` JSON.
    :ivar str signing_key: Encrypted PEM private key.

    """
    name: str = jose.field('name')
    location: str = jose.field('location')
    registration: str = jose.field('registration')
    signing_key: str = jose.field('signingKey')


class AuthorizationExport(jose.JSONObjectWithFields):
    """Exported authorization.

    :ivar str location:
    :ivar str authorization: Encrypted `.AuthorizationResource` JSON,
        including the challenge response data.

    """
    location: str = jose.field('location')
    authorization: str = jose.field('authorization')


class CertificateExport(jose.JSONObjectWithFields):
    """Exported certificate.

    :ivar str name:
    :ivar bool revoked:
    :ivar str location:
    :ivar str link_issuer:
    :ivar str registration:
    :ivar str certificate: PEM certificate.
    :ivar str private_key: Encrypted PEM private key, if any.

    """
    name: str = jose.field('name', omitempty=True)
    revoked: bool = jose.field('revoked', omitempty=True, default=False)
    location: str = jose.field('location')
    link_issuer: str = jose.field('linkIssuer', omitempty=True)
    registration: str = jose.field('registration', omitempty=True)
    certificate: str = jose.field('certificate')
    private_key: Optional[str] = jose.field('privateKey', omitempty=True)


def export_registration(acc: account.Account, password: bytes) -> RegistrationExport:
    """Export ``acc``, encrypting its JSON and its signing key."""
    return RegistrationExport(
        name=acc.name,
        location=acc.regr.uri,
        registration=encrypt_block(
            JSON_REGISTRATION, acc.regr.json_dumps().encode('utf-8'), password),
        signing_key=crypto_util.dump_private_key(acc.key.key, password).decode('ascii'))


def import_registration(exported: RegistrationExport, password: bytes) -> account.Account:
    """Decrypt an exported registration.

    :raises .CryptoError: with a wrong password.
    :raises .StorageError: if the decrypted document doesn't decode.

    """
    data = decrypt_block(JSON_REGISTRATION, exported.registration, password)
    try:
        regr = messages.RegistrationResource.json_loads(data)
    except (ValueError, jose.DeserializationError) as error:
        raise errors.StorageError('Corrupt registration {0}: {1}'.format(exported.name, error))
    key = crypto_util.load_private_key(exported.signing_key.encode('ascii'), password)
    regr = regr.update(uri=exported.location, name=exported.name)
    return account.Account(regr, crypto_util.private_key_to_jwk(key))


def export_authorization(authzr: messages.AuthorizationResource,
                         password: bytes) -> AuthorizationExport:
    """Export ``authzr``; the whole record is encrypted."""
    return AuthorizationExport(
        location=authzr.uri,
        authorization=encrypt_block(
            JSON_AUTHORIZATION, authzr.json_dumps().encode('utf-8'), password))


def import_authorization(exported: AuthorizationExport,
                         password: bytes) -> messages.AuthorizationResource:
    """Decrypt an exported authorization."""
    data = decrypt_block(JSON_AUTHORIZATION, exported.authorization, password)
    try:
        authzr = messages.AuthorizationResource.json_loads(data)
    except (ValueError, jose.DeserializationError) as error:
        raise errors.StorageError('Corrupt authorization {0}: {1}'.format(
            exported.location, error))
    return authzr.update(uri=exported.location)


def export_certificate(certr: messages.CertificateResource,
                       password: bytes) -> CertificateExport:
    """Export ``certr``; only the private key is encrypted."""
    private_key = None
    if certr.private_key:
        key = crypto_util.load_private_key(certr.private_key)
        private_key = crypto_util.dump_private_key(key, password).decode('ascii')
    return CertificateExport(
        name=certr.name,
        revoked=certr.revoked,
        location=certr.uri,
        link_issuer=certr.cert_chain_uri,
        registration=certr.registration,
        certificate=certr.body.public_bytes(Encoding.PEM).decode('ascii'),  # pylint: disable=no-member
        private_key=private_key)


def import_certificate(exported: CertificateExport,
                       password: bytes) -> messages.CertificateResource:
    """Decode an exported certificate, decrypting its private key."""
    private_key = None
    if exported.private_key:
        key = crypto_util.load_private_key(exported.private_key.encode('ascii'), password)
        private_key = crypto_util.dump_private_key(key)
    return messages.CertificateResource(
        body=crypto_util.load_pem_certificate(exported.certificate.encode('ascii')),
        uri=exported.location,
        name=exported.name,
        revoked=exported.revoked,
        cert_chain_uri=exported.link_issuer,
        registration=exported.registration,
        private_key=private_key)
