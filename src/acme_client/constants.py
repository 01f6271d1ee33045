"""ACME client constants."""
from acme_client import __version__

USER_AGENT = 'acme-client/{0}'.format(__version__)
"""Default ``User-Agent`` header value."""

DEFAULT_NETWORK_TIMEOUT = 45
"""Default timeout (in seconds) for network requests."""

POLL_ATTEMPTS = 10
"""Number of authorization refreshes during batch polling."""

POLL_INTERVAL = 1
"""Seconds slept between two batch polling refreshes."""

RSA_KEY_SIZES = (2048, 3072, 4096)
DEFAULT_RSA_KEY_SIZE = 4096

ELLIPTIC_CURVES = ('P-256', 'P-384', 'P-521')
DEFAULT_ELLIPTIC_CURVE = 'P-521'

KEY_TYPES = ('rsa', 'ecdsa')
DEFAULT_KEY_TYPE = 'ecdsa'

DVSNI_CERT_KEY_SIZE = 2048
"""Size of the throwaway RSA key used for dvsni instruction certificates."""

CLI_DEFAULTS = dict(
    server='https://acme-staging.api.letsencrypt.org/directory',
    user_agent=USER_AGENT,
    timeout=DEFAULT_NETWORK_TIMEOUT,
    verify_ssl=True,
    poll_attempts=POLL_ATTEMPTS,
    poll_interval=POLL_INTERVAL,
    key_type=DEFAULT_KEY_TYPE,
    rsa_key_size=DEFAULT_RSA_KEY_SIZE,
    elliptic_curve=DEFAULT_ELLIPTIC_CURVE,
    http01_port=80,
    tls_port=443,
)
"""Defaults for `acme_client.configuration.ClientConfig`."""

JSON_CONTENT_TYPE = 'application/json'
JOSE_CONTENT_TYPE = 'application/jose+json'
JSON_ERROR_CONTENT_TYPE = 'application/problem+json'
PKIX_CERT_CONTENT_TYPE = 'application/pkix-cert'
REPLAY_NONCE_HEADER = 'Replay-Nonce'
