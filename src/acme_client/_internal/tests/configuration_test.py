"""Tests for acme_client.configuration."""
import argparse
import os
import shutil
import sys
import tempfile
import unittest
from unittest import mock

import pytest

from acme_client import constants
from acme_client import errors


class ClientConfigTest(unittest.TestCase):
    """Tests for acme_client.configuration.ClientConfig."""

    def setUp(self):
        self.tempdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tempdir, 'client.ini')

    def tearDown(self):
        shutil.rmtree(self.tempdir)

    def _write(self, text):
        with open(self.path, 'w') as f:
            f.write(text)

    def test_defaults(self):
        from acme_client.configuration import ClientConfig
        config = ClientConfig(argparse.Namespace())
        assert config.to_dict() == constants.CLI_DEFAULTS

    def test_delegation(self):
        from acme_client.configuration import ClientConfig
        namespace = argparse.Namespace(server='https://example.org/directory')
        config = ClientConfig(namespace)
        assert config.server == 'https://example.org/directory'
        config.timeout = 10
        assert namespace.timeout == 10

    def test_conversion(self):
        from acme_client.configuration import ClientConfig
        config = ClientConfig(argparse.Namespace(
            timeout='30', verify_ssl='no', poll_interval='0.5'))
        assert config.timeout == 30
        assert config.verify_ssl is False
        assert config.poll_interval == 0.5

    def test_insane(self):
        from acme_client.configuration import ClientConfig
        for settings in (dict(key_type='dsa'), dict(rsa_key_size=1024),
                         dict(elliptic_curve='P-224'), dict(timeout=0),
                         dict(poll_attempts=0), dict(poll_interval=-1),
                         dict(http01_port=70000), dict(tls_port=0),
                         dict(timeout='soon'), dict(verify_ssl='maybe')):
            with pytest.raises(errors.ConfigurationError):
                ClientConfig(argparse.Namespace(**settings))

    def test_from_file(self):
        from acme_client.configuration import ClientConfig
        self._write('server = https://example.org/directory\n'
                    'rsa-key-size = 2048\n'
                    'key_type = rsa\n'
                    'verify-ssl = false\n'
                    'http01_port = 5002\n')
        config = ClientConfig.from_file(self.path)
        assert config.server == 'https://example.org/directory'
        assert config.rsa_key_size == 2048
        assert config.key_type == 'rsa'
        assert config.verify_ssl is False
        assert config.http01_port == 5002
        assert config.tls_port == 443

    def test_from_file_overrides(self):
        from acme_client.configuration import ClientConfig
        self._write('timeout = 20\npoll_attempts = 4\n')
        config = ClientConfig.from_file(self.path, timeout=5, poll_attempts=None)
        assert config.timeout == 5
        assert config.poll_attempts == 4

    def test_from_file_unknown_setting(self):
        from acme_client.configuration import ClientConfig
        self._write('colour = blue\n')
        with mock.patch('acme_client.configuration.logger') as mock_logger:
            config = ClientConfig.from_file(self.path)
        assert not hasattr(config.namespace, 'colour')
        assert mock_logger.warning.call_count == 1

    def test_from_file_invalid_value(self):
        from acme_client.configuration import ClientConfig
        self._write('timeout = soon\n')
        with pytest.raises(errors.ConfigurationError):
            ClientConfig.from_file(self.path)

    def test_from_file_missing(self):
        from acme_client.configuration import ClientConfig
        with pytest.raises(errors.ConfigurationError):
            ClientConfig.from_file(os.path.join(self.tempdir, 'missing.ini'))

    def test_from_file_unparsable(self):
        from acme_client.configuration import ClientConfig
        self._write('[section\nkey = value\n')
        with pytest.raises(errors.ConfigurationError):
            ClientConfig.from_file(self.path)


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
