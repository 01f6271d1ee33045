"""Creates, refreshes and updates ACME registrations."""
import logging
from typing import Any
from typing import Iterable
from typing import Optional
from typing import TYPE_CHECKING

import josepy as jose

from acme_client import client
from acme_client import errors
from acme_client import messages

if TYPE_CHECKING:
    from acme_client import directory
    from acme_client import display
    from acme_client import storage

logger = logging.getLogger(__name__)


class Account:
    """ACME protocol registration.

    :ivar .RegistrationResource regr: Registration Resource
    :ivar .JWK key: Signing key, generated once and never rotated.

    """

    def __init__(self, regr: messages.RegistrationResource, key: jose.JWK) -> None:
        self.key = key
        self.regr = regr

    @property
    def name(self) -> str:
        """Local unique alias."""
        return self.regr.name

    @property
    def uri(self) -> str:
        """Server assigned location."""
        return self.regr.uri

    @property
    def directory(self) -> str:
        """Root URL of the directory the registration belongs to."""
        return self.regr.directory

    @property
    def public_key(self) -> jose.JWK:
        """Public part of `key`."""
        return self.key.public_key()

    def __repr__(self) -> str:
        return "<{0}({1}, {2})>".format(self.__class__.__name__, self.name, self.uri)

    def __eq__(self, other: Any) -> bool:
        return (isinstance(other, self.__class__) and
                self.key == other.key and self.regr == other.regr)


class AccountRegistrar:
    """Registration life cycle.

    Every operation persists its result in ``storage``.

    :ivar .Storage storage:
    :ivar .DirectoryCatalog catalog:
    :ivar .ClientNetwork net: Template network, a copy bound to the
        account key is used for signed requests.

    """

    def __init__(self, storage: 'storage.Storage', catalog: 'directory.DirectoryCatalog',
                 net: client.ClientNetwork) -> None:
        self.storage = storage
        self.catalog = catalog
        self.net = net

    def client(self, acc: Account) -> client.Client:
        """Protocol client signing with the key of ``acc``."""
        if not acc.directory:
            raise errors.Error('Registration {0} has no directory'.format(acc.name))
        dirr = self.catalog.get(acc.directory)
        return client.Client(dirr.body, self.net.with_key(acc.key))

    def create(self, name: str, root_url: str, key: jose.JWK,
               contact: Iterable[str] = ()) -> Account:
        """Register a new account.

        :param str name: Local alias, must not be in use.
        :param str root_url: Directory of the server to register with.
        :param .JWK key: New signing key.
        :param contact: ``mailto:``/``tel:`` URIs.

        :raises .ConflictError: if ``name`` is already taken.

        """
        if name in self.storage.registrations():
            raise errors.ConflictError(name)
        dirr = self.catalog.get(root_url)
        acme = client.Client(dirr.body, self.net.with_key(key))
        regr = acme.new_registration(messages.NewRegistration(contact=tuple(contact)))
        acc = Account(regr.update(name=name, directory=root_url), key)
        self.storage.new_registration(acc)
        logger.info('Created registration %s at %s', name, acc.uri)
        return acc

    def load(self, name: str) -> Optional[Account]:
        """Stored registration called ``name``, if any."""
        return self.storage.load_registration(name)

    def refresh(self, acc: Account) -> Account:
        """Pull the server side state of ``acc``."""
        regr = self.client(acc).query_registration(acc.regr)
        return self._save(acc, regr)

    def update(self, acc: Account, contact: Optional[Iterable[str]] = None,
               agreement: Optional[str] = None) -> Account:
        """Change contact details and/or the agreed terms of service.

        Fields not given keep their current value. Without any change
        nothing is sent.

        """
        if contact is None and agreement is None:
            logger.debug('Nothing to update for registration %s', acc.name)
            return acc
        body = acc.regr.body
        if contact is not None:
            body = body.update(contact=tuple(contact))
        if agreement is not None:
            body = body.update(agreement=agreement)
        update = messages.UpdateRegistration(contact=body.contact, agreement=body.agreement)
        regr = self.client(acc).update_registration(acc.regr, update)
        logger.info('Updated registration %s', acc.name)
        return self._save(acc, regr)

    def agree_to_tos(self, acc: Account, disp: 'display.Display',
                     force: bool = False) -> Account:
        """Offer the terms of service and record the operator's consent.

        :param bool force: Ask again even if already agreed.

        """
        tos = acc.regr.terms_of_service
        if not tos:
            logger.debug('Server published no terms of service')
            return acc
        if acc.regr.body.agreement == tos and not force:
            return acc
        if disp.yesno('Please read the terms of service at {0}. '
                      'Do you agree?'.format(tos), default=False):
            return self.update(acc, agreement=tos)
        logger.info('Terms of service %s not accepted', tos)
        return acc

    def _save(self, acc: Account, regr: messages.RegistrationResource) -> Account:
        # the directory and name are local, keep them whatever was returned
        regr = regr.update(name=acc.name, directory=acc.directory,
                           recovery_token=acc.regr.recovery_token)
        if not regr.terms_of_service:
            regr = regr.update(terms_of_service=acc.regr.terms_of_service)
        updated = Account(regr, acc.key)
        self.storage.set_registration(updated)
        return updated
