"""Client configuration."""
import argparse
import logging
from typing import Any
from typing import Callable
from typing import Dict

import configobj

from acme_client import constants
from acme_client import errors

logger = logging.getLogger(__name__)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ('1', 'yes', 'true', 'on'):
        return True
    if lowered in ('0', 'no', 'false', 'off'):
        return False
    raise ValueError('not a boolean: {0!r}'.format(value))


_CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    'timeout': int,
    'poll_attempts': int,
    'poll_interval': float,
    'rsa_key_size': int,
    'http01_port': int,
    'tls_port': int,
    'verify_ssl': _to_bool,
}


class ClientConfig:
    """Configuration wrapper around :class:`argparse.Namespace`.

    Unset settings fall back to `constants.CLI_DEFAULTS`.

    :ivar namespace: Namespace holding the settings.
    :type namespace: :class:`argparse.Namespace`

    """

    def __init__(self, namespace: argparse.Namespace) -> None:
        self.namespace: argparse.Namespace
        # Avoid recursion loop because of the delegation defined in __setattr__
        object.__setattr__(self, 'namespace', namespace)
        for name, default in constants.CLI_DEFAULTS.items():
            if getattr(namespace, name, None) is None:
                setattr(namespace, name, default)
        _check_config_sanity(self)

    @classmethod
    def from_file(cls, path: str, **overrides: Any) -> 'ClientConfig':
        """Read settings from an INI-style file.

        Keys of ``overrides`` that are not `None` win over the file.

        :raises .ConfigurationError: if the file can't be parsed or holds
            invalid values.

        """
        try:
            parsed = configobj.ConfigObj(path, encoding='utf-8', default_encoding='utf-8',
                                         file_error=True)
        except (configobj.ConfigObjError, IOError) as error:
            raise errors.ConfigurationError(
                'Unable to read configuration {0}: {1}'.format(path, error))
        settings: Dict[str, Any] = {}
        for key, value in parsed.items():
            name = key.replace('-', '_')
            if name not in constants.CLI_DEFAULTS:
                logger.warning('Ignoring unknown setting %r in %s', key, path)
                continue
            settings[name] = _convert(name, value)
        settings.update((k, v) for k, v in overrides.items() if v is not None)
        return cls(argparse.Namespace(**settings))

    def to_dict(self) -> Dict[str, Any]:
        """All settings."""
        return dict(vars(self.namespace))

    def __getattr__(self, name: str) -> Any:
        return getattr(self.namespace, name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self.namespace, name, value)


def _convert(name: str, value: Any) -> Any:
    converter = _CONVERTERS.get(name)
    if converter is None:
        return value
    try:
        return converter(value)
    except (TypeError, ValueError) as error:
        raise errors.ConfigurationError(
            'Invalid value {0!r} for {1}: {2}'.format(value, name, error))


def _check_config_sanity(config: ClientConfig) -> None:
    """Validate settings and raise `.ConfigurationError` on problems."""
    for name, converter in _CONVERTERS.items():
        setattr(config.namespace, name, _convert(name, getattr(config.namespace, name)))
    if config.key_type not in constants.KEY_TYPES:
        raise errors.ConfigurationError('Unsupported key type: {0}'.format(config.key_type))
    if config.rsa_key_size not in constants.RSA_KEY_SIZES:
        raise errors.ConfigurationError(
            'Unsupported RSA key size: {0}'.format(config.rsa_key_size))
    if config.elliptic_curve not in constants.ELLIPTIC_CURVES:
        raise errors.ConfigurationError(
            'Unsupported elliptic curve: {0}'.format(config.elliptic_curve))
    if config.timeout <= 0:
        raise errors.ConfigurationError('Timeout must be positive')
    if config.poll_attempts < 1:
        raise errors.ConfigurationError('At least one poll attempt is required')
    if config.poll_interval < 0:
        raise errors.ConfigurationError('Poll interval must not be negative')
    for name in ('http01_port', 'tls_port'):
        port = getattr(config, name)
        if not 0 < port < 65536:
            raise errors.ConfigurationError('Invalid {0}: {1}'.format(name, port))
