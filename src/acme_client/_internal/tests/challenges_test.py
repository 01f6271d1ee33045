"""Tests for acme_client.challenges."""
import base64
import hashlib
import json
import sys
import unittest

import josepy as jose
import pytest

from acme_client._internal.tests import test_util

KEY = test_util.rsa_jwk()


def _thumbprint(key):
    jobj = key.public_key().to_partial_json()
    canonical = json.dumps({name: jobj[name] for name in ('e', 'kty', 'n')},
                           sort_keys=True, separators=(',', ':'))
    digest = hashlib.sha256(canonical.encode('utf-8')).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b'=').decode()


class ChallengeTest(unittest.TestCase):

    def test_from_json_unrecognized(self):
        from acme_client.challenges import Challenge
        from acme_client.challenges import UnrecognizedChallenge
        chall = UnrecognizedChallenge({"type": "foo"})
        assert chall == Challenge.from_json(chall.jobj)

    def test_is_validated(self):
        from acme_client.challenges import HTTP01
        assert not HTTP01(token='a').is_validated
        assert HTTP01(token='a', validated='2015-03-26T10:00:00Z').is_validated


class UnrecognizedChallengeTest(unittest.TestCase):

    def setUp(self):
        from acme_client.challenges import UnrecognizedChallenge
        self.jobj = {"type": "foo", "uri": "https://x/chall/1", "bar": [1]}
        self.chall = UnrecognizedChallenge(self.jobj)

    def test_to_partial_json(self):
        assert dict(self.jobj, resource='challenge') == self.chall.to_partial_json()

    def test_fields(self):
        assert self.chall.typ == 'foo'
        assert self.chall.uri == 'https://x/chall/1'
        assert not self.chall.automatable

    def test_from_json(self):
        from acme_client.challenges import UnrecognizedChallenge
        assert self.chall == UnrecognizedChallenge.from_json(self.jobj)
        assert hash(self.chall) == hash(UnrecognizedChallenge.from_json(self.jobj))


class HTTP01Test(unittest.TestCase):

    def setUp(self):
        from acme_client.challenges import HTTP01
        self.msg = HTTP01(token='abc', uri='https://x/chall/1')
        self.jmsg = {
            'resource': 'challenge',
            'type': 'http-01',
            'uri': 'https://x/chall/1',
            'token': 'abc',
        }

    def test_to_partial_json(self):
        assert self.jmsg == self.msg.to_partial_json()

    def test_from_json(self):
        from acme_client.challenges import HTTP01
        assert self.msg == HTTP01.from_json(self.jmsg)

    def test_path(self):
        assert self.msg.path == '/.well-known/acme-challenge/abc'

    def test_validation_url(self):
        assert self.msg.validation_url('example.com') == \
            'http://example.com/.well-known/acme-challenge/abc'
        assert self.msg.validation_url('example.com', 'https').startswith('https://')

    def test_good_token(self):
        from acme_client.challenges import HTTP01
        assert self.msg.good_token
        assert not HTTP01(token='../etc').good_token
        assert not HTTP01(token='').good_token

    def test_key_authorization(self):
        assert self.msg.key_authorization(KEY) == 'abc.' + _thumbprint(KEY)

    def test_key_authorization_deterministic(self):
        assert self.msg.key_authorization(KEY) == self.msg.key_authorization(KEY)

    def test_response(self):
        response = self.msg.response(KEY)
        assert response.key_authorization == self.msg.key_authorization(KEY)
        assert response.to_partial_json() == {
            'resource': 'challenge',
            'type': 'http-01',
            'keyAuthorization': self.msg.key_authorization(KEY),
        }


class HTTP01ResponseTest(unittest.TestCase):

    def setUp(self):
        from acme_client.challenges import HTTP01Response
        self.response = HTTP01Response(key_authorization='abc.thumb')

    def test_from_json(self):
        from acme_client.challenges import ChallengeResponse
        assert self.response == ChallengeResponse.from_json(self.response.to_json())

    def test_check_document_ok(self):
        assert self.response.check_document(None, 'abc.thumb') is None
        assert self.response.check_document('text/plain; charset=utf-8',
                                            ' abc.thumb\r\n') is None

    def test_check_document_wrong_content_type(self):
        reason = self.response.check_document('text/html', 'abc.thumb')
        assert 'content-type' in reason

    def test_check_document_wrong_content(self):
        reason = self.response.check_document('', 'abc.other')
        assert "doesn't match" in reason


class SimpleHTTPTest(unittest.TestCase):

    def setUp(self):
        from acme_client.challenges import SimpleHTTP
        self.msg = SimpleHTTP(token='tok', uri='https://x/chall/2')

    def test_response_defaults_to_tls(self):
        from acme_client.challenges import SimpleHTTPResponse
        assert self.msg.response().tls
        assert SimpleHTTPResponse.from_json({'type': 'simpleHttp'}).tls

    def test_response_json(self):
        assert self.msg.response(tls=False).to_partial_json() == {
            'resource': 'challenge', 'type': 'simpleHttp', 'tls': False}

    def test_scheme(self):
        assert self.msg.response(tls=True).scheme == 'https'
        assert self.msg.response(tls=False).scheme == 'http'

    def test_validation(self):
        validation = self.msg.gen_validation(KEY, tls=False)
        assert json.loads(validation.payload.decode()) == {
            'type': 'simpleHttp', 'tls': False, 'token': 'tok'}
        assert self.msg.check_validation(validation, KEY.public_key(), tls=False)

    def test_check_validation_wrong_tls(self):
        validation = self.msg.gen_validation(KEY, tls=True)
        assert not self.msg.check_validation(validation, KEY.public_key(), tls=False)

    def test_check_validation_wrong_key(self):
        other = jose.JWKRSA(key=test_util.rsa_private_key(3072))
        validation = self.msg.gen_validation(other, tls=True)
        assert not self.msg.check_validation(validation, KEY.public_key())

    def test_check_validation_no_json(self):
        from acme_client.jws import JWS
        validation = JWS.sign(b'not json', KEY)
        assert not self.msg.check_validation(validation, KEY.public_key())

    def test_validation_document_round_trip(self):
        from acme_client.jws import JWS
        validation = JWS.json_loads(self.msg.gen_validation(KEY).json_dumps())
        assert self.msg.check_validation(validation, KEY.public_key())


class DVSNITest(unittest.TestCase):

    def setUp(self):
        from acme_client.challenges import DVSNI
        self.msg = DVSNI(token='tok', uri='https://x/chall/3')
        self.response = self.msg.response(KEY)

    def test_validation_payload(self):
        validation = self.response.validation
        assert json.loads(validation.payload.decode()) == {'type': 'dvsni', 'token': 'tok'}
        assert validation.verify(KEY.public_key())

    def test_z(self):
        signature = jose.b64encode(self.response.validation.signature.signature)
        assert self.response.z == hashlib.sha256(signature).hexdigest()

    def test_z_domain(self):
        z = self.response.z
        assert self.response.z_domain == '{0}.{1}.acme.invalid'.format(z[:32], z[32:64])

    def test_json_member_name(self):
        jobj = self.response.to_partial_json()
        assert set(jobj) == {'resource', 'type', 'validation'}

    def test_from_json(self):
        from acme_client.challenges import ChallengeResponse
        from acme_client.challenges import DVSNIResponse
        loaded = ChallengeResponse.from_json(self.response.to_json())
        assert isinstance(loaded, DVSNIResponse)
        assert loaded.z_domain == self.response.z_domain
        assert loaded.validation.verify(KEY.public_key())


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
