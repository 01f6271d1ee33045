"""Tests for acme_client.jws."""
import json
import sys
import unittest

from cryptography.hazmat.primitives.asymmetric import ec
import josepy as jose
import pytest

from acme_client._internal.tests import test_util


class HeaderTest(unittest.TestCase):
    """Tests for acme_client.jws.Header."""

    good_nonce = jose.encode_b64jose(b'foo')
    wrong_nonce = 'F'

    def test_nonce_decoder(self):
        from acme_client.jws import Header
        nonce_field = Header._fields['nonce']

        with pytest.raises(jose.DeserializationError):
            nonce_field.decode(self.wrong_nonce)
        assert b'foo' == nonce_field.decode(self.good_nonce)


class SignatureAlgorithmTest(unittest.TestCase):
    """Tests for acme_client.jws.signature_algorithm."""

    @classmethod
    def _call(cls, key):
        from acme_client.jws import signature_algorithm
        return signature_algorithm(key)

    def test_rsa(self):
        assert self._call(test_util.rsa_jwk()) is jose.PS512

    def test_ec(self):
        assert self._call(test_util.ec_jwk('P-256')) is jose.ES256
        assert self._call(test_util.ec_jwk('P-384')) is jose.ES384
        assert self._call(test_util.ec_jwk('P-521')) is jose.ES512

    def test_unsupported_curve(self):
        from acme_client.errors import CryptoError
        key = jose.JWKEC(key=ec.generate_private_key(ec.SECP256K1()))
        with pytest.raises(CryptoError):
            self._call(key)

    def test_unsupported_key_type(self):
        from acme_client.errors import CryptoError
        with pytest.raises(CryptoError):
            self._call(jose.JWKOct(key=b'secret'))


class JWSTest(unittest.TestCase):
    """Tests for acme_client.jws.JWS."""

    def setUp(self):
        self.privkey = test_util.ec_jwk()
        self.pubkey = self.privkey.public_key()
        self.nonce = b'Nonce'

    def test_protected_header(self):
        from acme_client.jws import JWS
        signed = JWS.sign(payload=b'foo', key=self.privkey, nonce=self.nonce)
        jobj = signed.to_partial_json()
        protected = json.loads(jose.b64decode(jobj['protected']).decode())
        assert set(protected) == {'alg', 'jwk', 'nonce'}
        assert protected['alg'] == 'ES256'
        assert jose.b64decode(protected['nonce']) == self.nonce

    def test_round_trip_verifies(self):
        from acme_client.jws import JWS
        signed = JWS.sign(payload=b'foo', key=self.privkey, nonce=self.nonce)
        loaded = JWS.json_loads(signed.json_dumps())
        assert loaded.signature.combined.nonce == self.nonce
        assert loaded.signature.combined.jwk == self.pubkey
        assert loaded.payload == b'foo'
        assert loaded.verify()

    def test_explicit_alg(self):
        from acme_client.jws import JWS
        signed = JWS.sign(payload=b'foo', key=test_util.rsa_jwk(), alg=jose.RS256)
        assert signed.signature.combined.alg == jose.RS256


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
