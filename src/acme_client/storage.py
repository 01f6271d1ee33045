"""Persistent storage contract, in-memory storage and credentials.

Records are owned by the storage, keyed by the registration name; child
records (authorizations, certificates) only refer back to their
registration by name, and registrations to their directory by root URL.

"""
from abc import ABCMeta
from abc import abstractmethod
import collections
import datetime
import json
import logging
from typing import Any
from typing import Callable
from typing import Dict
from typing import Iterable
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import TypeVar

import josepy as jose
import pytz

from acme_client import account
from acme_client import display as display_mod
from acme_client import errors
from acme_client import export
from acme_client import messages

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Authorization statuses `Storage.load_authorization_by_dns` considers usable.
REUSABLE_STATUSES = (messages.STATUS_PENDING, messages.STATUS_PROCESSING,
                     messages.STATUS_VALID)


class AuthorizationInfo(NamedTuple):
    """Summary of a stored authorization."""
    location: str
    dns: Optional[str]
    status: str
    expires: Optional[datetime.datetime]


class CredentialProvider(metaclass=ABCMeta):
    """Source of the password protecting stored secrets."""

    @abstractmethod
    def password(self, prompt: str) -> bytes:  # pragma: no cover
        """Return the storage password.

        :param str prompt: Text to show if the password must be asked for.

        """
        raise NotImplementedError()


class StaticCredentials(CredentialProvider):
    """Fixed password, e.g. from a configuration file."""

    def __init__(self, password: bytes) -> None:
        self._password = password

    def password(self, prompt: str) -> bytes:
        return self._password


class DisplayCredentials(CredentialProvider):
    """Asks the operator through a `.Display`."""

    def __init__(self, display: display_mod.Display) -> None:
        self.display = display

    def password(self, prompt: str) -> bytes:
        return self.display.password(prompt).encode('utf-8')


class Storage(metaclass=ABCMeta):
    """Durable store of directory, registration, authorization and
    certificate records.

    Lookups return `None` when nothing matches. Names and locations are
    unique; creating a duplicate raises `.ConflictError`.

    """

    @abstractmethod
    def load_directory(self, root_url: str) -> Optional[messages.DirectoryResource]:  # pragma: no cover
        """Directory stored for ``root_url``."""
        raise NotImplementedError()

    @abstractmethod
    def new_directory(self, dirr: messages.DirectoryResource) -> None:  # pragma: no cover
        """Store a directory not known yet."""
        raise NotImplementedError()

    @abstractmethod
    def set_directory(self, dirr: messages.DirectoryResource) -> None:  # pragma: no cover
        """Overwrite a known directory."""
        raise NotImplementedError()

    @abstractmethod
    def load_registration(self, name: str) -> Optional[account.Account]:  # pragma: no cover
        """Registration (with its signing key) called ``name``."""
        raise NotImplementedError()

    @abstractmethod
    def new_registration(self, acc: account.Account) -> None:  # pragma: no cover
        """Store a new registration.

        :raises .ConflictError: if the name is taken.

        """
        raise NotImplementedError()

    @abstractmethod
    def set_registration(self, acc: account.Account) -> None:  # pragma: no cover
        """Overwrite a known registration."""
        raise NotImplementedError()

    @abstractmethod
    def registrations(self) -> List[str]:  # pragma: no cover
        """Names of all stored registrations."""
        raise NotImplementedError()

    @abstractmethod
    def new_authorization(self, authzr: messages.AuthorizationResource) -> None:  # pragma: no cover
        """Store a new authorization.

        :raises .ConflictError: if the location is already known.

        """
        raise NotImplementedError()

    @abstractmethod
    def load_authorization_by_url(self, url: str
                                  ) -> Optional[messages.AuthorizationResource]:  # pragma: no cover
        """Authorization stored under location ``url``."""
        raise NotImplementedError()

    @abstractmethod
    def load_authorization_by_dns(self, registration: str, dns: str
                                  ) -> Optional[messages.AuthorizationResource]:  # pragma: no cover
        """Newest non-expired pending, processing or valid authorization
        of ``registration`` for ``dns``."""
        raise NotImplementedError()

    @abstractmethod
    def set_authorization(self, authzr: messages.AuthorizationResource) -> None:  # pragma: no cover
        """Overwrite a known authorization."""
        raise NotImplementedError()

    @abstractmethod
    def authorization_infos(self, registration: str, statuses: Optional[Iterable[str]] = None
                            ) -> List[AuthorizationInfo]:  # pragma: no cover
        """Summaries of the authorizations of ``registration``, oldest
        first, optionally restricted to ``statuses``."""
        raise NotImplementedError()

    @abstractmethod
    def new_certificate(self, certr: messages.CertificateResource) -> None:  # pragma: no cover
        """Store a new certificate.

        :raises .ConflictError: if the location or the name (within the
            registration) is taken.

        """
        raise NotImplementedError()

    @abstractmethod
    def load_certificate(self, registration: str, name_or_location: str
                         ) -> Optional[messages.CertificateResource]:  # pragma: no cover
        """Certificate of ``registration`` by location or by name."""
        raise NotImplementedError()

    @abstractmethod
    def set_certificate(self, certr: messages.CertificateResource) -> None:  # pragma: no cover
        """Overwrite a known certificate (matched by location)."""
        raise NotImplementedError()

    @abstractmethod
    def certificates(self, registration: str) -> List[messages.CertificateResource]:  # pragma: no cover
        """All certificates of ``registration``."""
        raise NotImplementedError()


class _AuthorizationRow(NamedTuple):
    registration: str
    dns: Optional[str]
    status: str
    expires: Optional[datetime.datetime]
    data: str


class _CertificateRow(NamedTuple):
    registration: str
    name: str
    data: str


# Helper function that can be mocked in unit tests
def _now() -> datetime.datetime:
    return datetime.datetime.now(pytz.utc)


class MemoryStorage(Storage):
    """In-memory storage.

    Every record is kept in its exported (password protected) form, so
    secrets only exist in plaintext while in use. The password is asked
    from ``credentials`` once and cached for the lifetime of this object;
    a password that fails to decrypt a record is forgotten again.

    :ivar .CredentialProvider credentials:

    """
    PASSWORD_PROMPT = 'Storage password'

    def __init__(self, credentials: CredentialProvider) -> None:
        self.credentials = credentials
        self._password: Optional[bytes] = None
        self._directories: Dict[str, str] = {}
        self._registrations: Dict[str, str] = {}
        # insertion ordered: the last matching row is the newest
        self._authorizations: Dict[str, _AuthorizationRow] = collections.OrderedDict()
        self._certificates: Dict[str, _CertificateRow] = collections.OrderedDict()

    def _get_password(self) -> bytes:
        if self._password is None:
            self._password = self.credentials.password(self.PASSWORD_PROMPT)
        return self._password

    def _decrypting(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return func(*args, self._get_password())
        except errors.CryptoError:
            logger.debug('Forgetting storage password after decryption failure')
            self._password = None
            raise

    def load_directory(self, root_url: str) -> Optional[messages.DirectoryResource]:
        data = self._directories.get(root_url)
        if data is None:
            return None
        return messages.DirectoryResource.json_loads(data)

    def new_directory(self, dirr: messages.DirectoryResource) -> None:
        if dirr.uri in self._directories:
            raise errors.ConflictError(dirr.uri)
        self._directories[dirr.uri] = dirr.json_dumps()

    def set_directory(self, dirr: messages.DirectoryResource) -> None:
        if dirr.uri not in self._directories:
            raise errors.StorageError('Unknown directory {0}'.format(dirr.uri))
        self._directories[dirr.uri] = dirr.json_dumps()

    def load_registration(self, name: str) -> Optional[account.Account]:
        data = self._registrations.get(name)
        if data is None:
            return None
        exported = export.RegistrationExport.json_loads(data)
        return self._decrypting(export.import_registration, exported)

    def new_registration(self, acc: account.Account) -> None:
        if not acc.name:
            raise errors.StorageError('Registration without a name')
        if acc.name in self._registrations:
            raise errors.ConflictError(acc.name)
        self._store_registration(acc)

    def set_registration(self, acc: account.Account) -> None:
        if acc.name not in self._registrations:
            raise errors.StorageError('Unknown registration {0}'.format(acc.name))
        self._store_registration(acc)

    def _store_registration(self, acc: account.Account) -> None:
        exported = export.export_registration(acc, self._get_password())
        self._registrations[acc.name] = exported.json_dumps()
        logger.debug('Stored registration %s (%s)', acc.name, acc.uri)

    def registrations(self) -> List[str]:
        return list(self._registrations)

    def new_authorization(self, authzr: messages.AuthorizationResource) -> None:
        if authzr.uri in self._authorizations:
            raise errors.ConflictError(authzr.uri)
        self._store_authorization(authzr)

    def set_authorization(self, authzr: messages.AuthorizationResource) -> None:
        if authzr.uri not in self._authorizations:
            raise errors.StorageError('Unknown authorization {0}'.format(authzr.uri))
        self._store_authorization(authzr)

    def _store_authorization(self, authzr: messages.AuthorizationResource) -> None:
        exported = export.export_authorization(authzr, self._get_password())
        body = authzr.body
        self._authorizations[authzr.uri] = _AuthorizationRow(
            registration=authzr.registration, dns=body.dns, status=body.status,
            expires=body.expires, data=exported.json_dumps())
        logger.debug('Stored authorization %s for %s, status %s',
                     authzr.uri, body.dns, messages.status_name(body.status))

    def _load_authorization(self, row: _AuthorizationRow) -> messages.AuthorizationResource:
        exported = export.AuthorizationExport.json_loads(row.data)
        return self._decrypting(export.import_authorization, exported)

    def load_authorization_by_url(self, url: str
                                  ) -> Optional[messages.AuthorizationResource]:
        row = self._authorizations.get(url)
        if row is None:
            return None
        return self._load_authorization(row)

    def load_authorization_by_dns(self, registration: str, dns: str
                                  ) -> Optional[messages.AuthorizationResource]:
        now = _now()
        for row in reversed(list(self._authorizations.values())):
            if row.registration != registration or row.dns != dns:
                continue
            if row.status not in REUSABLE_STATUSES:
                continue
            if row.expires is not None and row.expires <= now:
                continue
            return self._load_authorization(row)
        return None

    def authorization_infos(self, registration: str, statuses: Optional[Iterable[str]] = None
                            ) -> List[AuthorizationInfo]:
        wanted = None if statuses is None else frozenset(statuses)
        return [AuthorizationInfo(location, row.dns, row.status, row.expires)
                for location, row in self._authorizations.items()
                if row.registration == registration
                and (wanted is None or row.status in wanted)]

    def new_certificate(self, certr: messages.CertificateResource) -> None:
        if certr.uri in self._certificates:
            raise errors.ConflictError(certr.uri)
        self._check_certificate_name(certr)
        self._store_certificate(certr)

    def set_certificate(self, certr: messages.CertificateResource) -> None:
        if certr.uri not in self._certificates:
            raise errors.StorageError('Unknown certificate {0}'.format(certr.uri))
        self._check_certificate_name(certr)
        self._store_certificate(certr)

    def _check_certificate_name(self, certr: messages.CertificateResource) -> None:
        if not certr.name:
            return
        for location, row in self._certificates.items():
            if (location != certr.uri and row.registration == certr.registration
                    and row.name == certr.name):
                raise errors.ConflictError(certr.name)

    def _store_certificate(self, certr: messages.CertificateResource) -> None:
        exported = export.export_certificate(certr, self._get_password())
        self._certificates[certr.uri] = _CertificateRow(
            registration=certr.registration, name=certr.name or '',
            data=exported.json_dumps())
        logger.debug('Stored certificate %s (%s)', certr.name, certr.uri)

    def _load_certificate(self, row: _CertificateRow) -> messages.CertificateResource:
        exported = export.CertificateExport.json_loads(row.data)
        if not exported.private_key:
            return export.import_certificate(exported, b'')
        return self._decrypting(export.import_certificate, exported)

    def load_certificate(self, registration: str, name_or_location: str
                         ) -> Optional[messages.CertificateResource]:
        row = self._certificates.get(name_or_location)
        if row is not None and row.registration == registration:
            return self._load_certificate(row)
        for row in self._certificates.values():
            if row.registration == registration and row.name == name_or_location:
                return self._load_certificate(row)
        return None

    def certificates(self, registration: str) -> List[messages.CertificateResource]:
        return [self._load_certificate(row) for row in self._certificates.values()
                if row.registration == registration]

    def dump(self) -> str:
        """Serialize every record, still password protected, to JSON."""
        return json.dumps({
            'directories': self._directories,
            'registrations': self._registrations,
            'authorizations': [
                {'location': location, 'registration': row.registration,
                 'export': row.data}
                for location, row in self._authorizations.items()],
            'certificates': [
                {'location': location, 'registration': row.registration,
                 'export': row.data}
                for location, row in self._certificates.items()],
        }, indent=2, sort_keys=True)

    @classmethod
    def load(cls, data: str, credentials: CredentialProvider) -> 'MemoryStorage':
        """Counterpart of `dump`.

        Authorization summaries are rebuilt by decrypting each record, so
        ``credentials`` are asked for right away if any exist.

        :raises .StorageError: for malformed input.

        """
        try:
            jobj = json.loads(data)
            storage = cls(credentials)
            storage._directories.update(jobj['directories'])
            storage._registrations.update(jobj['registrations'])
            for item in jobj['authorizations']:
                exported = export.AuthorizationExport.json_loads(item['export'])
                authzr = storage._decrypting(export.import_authorization, exported)
                storage._authorizations[item['location']] = _AuthorizationRow(
                    registration=item['registration'], dns=authzr.body.dns,
                    status=authzr.body.status, expires=authzr.body.expires,
                    data=item['export'])
            for item in jobj['certificates']:
                exported = export.CertificateExport.json_loads(item['export'])
                storage._certificates[item['location']] = _CertificateRow(
                    registration=item['registration'], name=exported.name or '',
                    data=item['export'])
        except (ValueError, KeyError, TypeError, jose.DeserializationError) as error:
            raise errors.StorageError('Malformed storage dump: {0}'.format(error))
        return storage
