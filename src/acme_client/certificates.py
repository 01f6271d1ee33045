"""Certificate issuance, retrieval, revocation and local management."""
import logging
from typing import List
from typing import Optional

import pyrfc3339

from acme_client import account
from acme_client import client
from acme_client import crypto_util
from acme_client import errors
from acme_client import messages
from acme_client import storage as storage_mod

logger = logging.getLogger(__name__)


class CertificateIssuer:
    """Certificates of one account.

    Names are unique per account; an issued certificate replacing one
    with the same name pushes the old one aside (see `request`).

    :ivar .Account account:
    :ivar .Client acme:
    :ivar .Storage storage:

    """

    def __init__(self, acc: account.Account, acme: client.Client,
                 storage: storage_mod.Storage) -> None:
        self.account = acc
        self.acme = acme
        self.storage = storage

    def request(self, name: str, csr: bytes,
                private_key: Optional[crypto_util.PrivateKey] = None
                ) -> messages.CertificateResource:
        """Request issuance of ``csr`` and store the result as ``name``.

        An existing certificate called ``name`` is renamed to
        ``name#<expiry>`` first.

        :param bytes csr: DER-encoded CSR.
        :param private_key: Key the CSR was made with, stored alongside.

        :raises .ProtocolError: if the response lacks a Location or has
            the wrong Content-Type; nothing is stored then.

        """
        certr = self.acme.request_issuance(csr)
        certr = certr.update(
            name=name, registration=self.account.name,
            private_key=(crypto_util.dump_private_key(private_key)
                         if private_key is not None else None))
        old = self.storage.load_certificate(self.account.name, name)
        if old is not None and old.uri != certr.uri:
            old_name = '{0}#{1}'.format(name, pyrfc3339.generate(
                crypto_util.not_valid_after(old.body)))
            logger.info('Renaming previous certificate %s to %s', name, old_name)
            self.storage.set_certificate(old.update(name=old_name))
        self._store(certr)
        logger.info('Issued certificate %s at %s', name, certr.uri)
        return certr

    def refresh(self, certr: messages.CertificateResource
                ) -> messages.CertificateResource:
        """Fetch ``certr`` again, keeping its local fields."""
        fetched = self.acme.fetch_certificate(certr.uri)
        updated = certr.update(body=fetched.body, cert_chain_uri=fetched.cert_chain_uri)
        self.storage.set_certificate(updated)
        return updated

    def import_certificate(self, location: str, name: str = ''
                           ) -> messages.CertificateResource:
        """Fetch the certificate at ``location`` and store it.

        :raises .ConflictError: if it is stored already or ``name`` is
            taken.

        """
        if self.storage.load_certificate(self.account.name, location) is not None:
            raise errors.ConflictError(location)
        certr = self.acme.fetch_certificate(location).update(
            name=name or None, registration=self.account.name)
        self.storage.new_certificate(certr)
        return certr

    def fetch_all(self, update_all: bool = False) -> List[messages.CertificateResource]:
        """Import every certificate the server lists for the account.

        :param bool update_all: Also refresh the ones stored already.

        """
        result = []
        for url in self.acme.fetch_certificate_list(self.account.regr):
            certr = self.storage.load_certificate(self.account.name, url)
            if certr is None:
                logger.info('Importing certificate %s', url)
                certr = self.import_certificate(url)
            elif update_all:
                certr = self.refresh(certr)
            result.append(certr)
        return result

    def revoke(self, certr: messages.CertificateResource
               ) -> messages.CertificateResource:
        """Revoke ``certr`` and mark it revoked locally.

        :raises .UnexpectedStatus: unless the server answers HTTP 200.

        """
        self.acme.revoke(certr)
        updated = certr.update(revoked=True)
        self.storage.set_certificate(updated)
        logger.info('Revoked certificate %s', certr.uri)
        return updated

    def set_private_key(self, certr: messages.CertificateResource,
                        private_key: crypto_util.PrivateKey
                        ) -> messages.CertificateResource:
        """Attach ``private_key`` to a stored certificate."""
        updated = certr.update(private_key=crypto_util.dump_private_key(private_key))
        self.storage.set_certificate(updated)
        return updated

    def rename(self, certr: messages.CertificateResource,
               new_name: str) -> messages.CertificateResource:
        """Rename a stored certificate.

        :raises .ConflictError: if ``new_name`` is taken.

        """
        updated = certr.update(name=new_name)
        self.storage.set_certificate(updated)
        return updated

    def load(self, name_or_location: str) -> Optional[messages.CertificateResource]:
        """Stored certificate by name or location."""
        return self.storage.load_certificate(self.account.name, name_or_location)

    def list_certificates(self) -> List[messages.CertificateResource]:
        """All stored certificates of the account."""
        return self.storage.certificates(self.account.name)

    def _store(self, certr: messages.CertificateResource) -> None:
        if self.storage.load_certificate(self.account.name, certr.uri) is None:
            self.storage.new_certificate(certr)
        else:
            self.storage.set_certificate(certr)
