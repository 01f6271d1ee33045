"""Top-level client session."""
import logging
from typing import Iterable
from typing import Optional

import josepy as jose

from acme_client import account
from acme_client import auth_handler
from acme_client import certificates
from acme_client import client
from acme_client import configuration
from acme_client import crypto_util
from acme_client import directory
from acme_client import responders
from acme_client import storage as storage_mod

logger = logging.getLogger(__name__)


class Session:
    """Owns the storage and the shared collaborators.

    Records live in `storage`; engines returned by `authorization_engine` and
    `certificate_issuer` are bound to one `.Account`. They look up and store
    records by the account name, so the storage stays the source of truth.

    :ivar .ClientConfig config:
    :ivar .Storage storage:
    :ivar .ClientNetwork net: Unsigned network, see `.ClientNetwork.with_key`.
    :ivar .DirectoryCatalog catalog:
    :ivar .AccountRegistrar registrar:
    :ivar .VerificationClient verifier:

    """

    def __init__(self, config: configuration.ClientConfig, storage: storage_mod.Storage,
                 verifier: Optional[responders.VerificationClient] = None) -> None:
        self.config = config
        self.storage = storage
        self.net = client.ClientNetwork(
            verify_ssl=config.verify_ssl, user_agent=config.user_agent,
            timeout=config.timeout)
        self.catalog = directory.DirectoryCatalog(storage, self.net)
        self.registrar = account.AccountRegistrar(storage, self.catalog, self.net)
        if verifier is None:
            verifier = responders.VerificationClient(
                timeout=config.timeout, user_agent=config.user_agent,
                ports={'http': config.http01_port, 'tls': config.tls_port})
        self.verifier = verifier

    @classmethod
    def open(cls, config: configuration.ClientConfig,
             credentials: storage_mod.CredentialProvider) -> 'Session':
        """Session on a fresh `.MemoryStorage` protected by ``credentials``."""
        return cls(config, storage_mod.MemoryStorage(credentials))

    def new_key(self) -> jose.JWK:
        """Generate a signing key as configured."""
        return crypto_util.private_key_to_jwk(crypto_util.generate_private_key(
            self.config.key_type, self.config.rsa_key_size, self.config.elliptic_curve))

    def register(self, name: str, contact: Iterable[str] = (),
                 key: Optional[jose.JWK] = None) -> account.Account:
        """Register ``name`` with the configured server."""
        if key is None:
            key = self.new_key()
        return self.registrar.create(name, self.config.server, key, contact)

    def load_account(self, name: str) -> Optional[account.Account]:
        """Stored account called ``name``, if any."""
        return self.registrar.load(name)

    def authorization_engine(self, acc: account.Account) -> auth_handler.AuthorizationEngine:
        """Authorization engine for ``acc``."""
        return auth_handler.AuthorizationEngine(
            acc, self.registrar.client(acc), self.storage, self.verifier,
            poll_attempts=self.config.poll_attempts,
            poll_interval=self.config.poll_interval)

    def certificate_issuer(self, acc: account.Account) -> certificates.CertificateIssuer:
        """Certificate issuer for ``acc``."""
        return certificates.CertificateIssuer(acc, self.registrar.client(acc), self.storage)
