"""ACME-specific JWS.

The JWS implementation in josepy only implements the base JOSE standard.
This module adds the replay nonce header used by every signed request and
the choice of signature algorithm for an account key.

"""
from typing import Optional

import josepy as jose

from acme_client import errors

_EC_ALGORITHMS = {
    'secp224r1': jose.ES256,
    'secp256r1': jose.ES256,
    'secp384r1': jose.ES384,
    'secp521r1': jose.ES512,
}

RSA_ALGORITHM = jose.PS512
"""Signature algorithm for every RSA account key."""


def signature_algorithm(key: jose.JWK) -> jose.JWASignature:
    """Pick the signature algorithm matching ``key``.

    Elliptic curve keys get the hash strength of their curve, RSA keys
    always use `RSA_ALGORITHM`.

    :param josepy.JWK key: Account key.

    :raises .CryptoError: for unsupported key types or curves.

    """
    if isinstance(key, jose.JWKRSA):
        return RSA_ALGORITHM
    if isinstance(key, jose.JWKEC):
        curve = key.key.curve.name
        try:
            return _EC_ALGORITHMS[curve]
        except KeyError:
            raise errors.CryptoError('Unsupported elliptic curve: {0}'.format(curve))
    raise errors.CryptoError('Unsupported key type: {0}'.format(type(key).__name__))


class Header(jose.Header):
    """ACME-specific JOSE Header. Implements nonce."""
    nonce: Optional[bytes] = jose.field('nonce', omitempty=True, encoder=jose.encode_b64jose)

    @nonce.decoder  # type: ignore[no-redef,attr-defined,union-attr]
    def nonce(value: str) -> bytes:  # type: ignore[misc]  # pylint: disable=no-self-argument,missing-function-docstring
        try:
            return jose.decode_b64jose(value)
        except jose.DeserializationError as error:
            raise jose.DeserializationError("Invalid nonce: {0}".format(error))


class Signature(jose.Signature):
    """ACME-specific Signature. Uses ACME-specific Header for customer fields."""
    __slots__ = jose.Signature._orig_slots  # type: ignore[attr-defined]  # pylint: disable=protected-access,no-member

    header_cls = Header
    header: Header = jose.field(
        'header', omitempty=True, default=header_cls(),
        decoder=header_cls.from_json)


class JWS(jose.JWS):
    """ACME-specific JWS. Includes nonce, jwk and alg in protected header."""
    signature_cls = Signature
    __slots__ = jose.JWS._orig_slots  # type: ignore[attr-defined]  # pylint: disable=protected-access

    @classmethod
    # type: ignore[override]  # pylint: disable=arguments-differ
    def sign(cls, payload: bytes, key: jose.JWK, alg: Optional[jose.JWASignature] = None,
             nonce: Optional[bytes] = None) -> jose.JWS:
        if alg is None:
            alg = signature_algorithm(key)
        return super().sign(payload, key=key, alg=alg,
                            protect=frozenset(['nonce', 'jwk', 'alg']),
                            nonce=nonce, include_jwk=True)
