"""Authorization life cycle, challenge answering and batch polling."""
import collections
import enum
import logging
import time
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Set
from typing import Tuple

import josepy as jose

from acme_client import account
from acme_client import challenges
from acme_client import client
from acme_client import constants
from acme_client import display
from acme_client import errors
from acme_client import messages
from acme_client import responders
from acme_client import storage as storage_mod

logger = logging.getLogger(__name__)


class BatchResult(enum.Enum):
    """Outcome of a batch authorization for one domain."""
    VALID = 'valid'
    PROCESSING = 'processing'
    INVALID = 'invalid'
    TIMEOUT = 'timeout'
    UNSUPPORTED = 'unsupported'
    FAILED = 'failed'


def combination_possible(combination: Iterable[int], challs: Tuple[challenges.Challenge, ...],
                         answered: Set[int]) -> bool:
    """Can every challenge of ``combination`` succeed?

    A challenge counts if the server already validated it or if it is
    in ``answered``.

    """
    for index in combination:
        if index < 0:
            return False
        if index in answered:
            continue
        if index >= len(challs) or not challs[index].is_validated:
            return False
    return True


def satisfiable(authz: messages.Authorization, answered: Set[int]) -> bool:
    """Is any combination of ``authz`` possible (`combination_possible`)?"""
    return any(combination_possible(comb, authz.challenges, answered)
               for comb in authz.combinations)


class AuthorizationEngine:
    """Creates, refreshes and answers authorizations of one account.

    :ivar .Account account:
    :ivar .Client acme: Client signing with the account key.
    :ivar .Storage storage:
    :ivar .VerificationClient verifier: Passed to every responder.

    """

    def __init__(self, acc: account.Account, acme: client.Client,
                 storage: storage_mod.Storage,
                 verifier: Optional[responders.VerificationClient] = None,
                 poll_attempts: int = constants.POLL_ATTEMPTS,
                 poll_interval: float = constants.POLL_INTERVAL) -> None:
        self.account = acc
        self.acme = acme
        self.storage = storage
        self.verifier = verifier
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval

    def create(self, dns: str) -> messages.AuthorizationResource:
        """Request a new authorization for ``dns`` and store it."""
        authzr = self.acme.request_authorization(dns)
        authzr = authzr.update(registration=self.account.name)
        self.storage.new_authorization(authzr)
        logger.info('Created authorization %s for %s', authzr.uri, dns)
        return authzr

    def refresh(self, authzr: messages.AuthorizationResource
                ) -> messages.AuthorizationResource:
        """Replace the local state by the server's.

        Stored challenge data and the registration are kept.

        """
        updated = self.acme.poll(authzr)
        self.storage.set_authorization(updated)
        if updated.body.status != authzr.body.status:
            logger.info('Authorization for %s: %s -> %s', updated.body.dns,
                        messages.status_name(authzr.body.status),
                        messages.status_name(updated.body.status))
        return updated

    def load(self, dns: str, refresh: bool = True
             ) -> Optional[messages.AuthorizationResource]:
        """Newest usable stored authorization for ``dns``, if any.

        With ``refresh``, authorizations the server lists but the storage
        lacks are imported first, and the one found is refreshed.

        """
        if refresh:
            self.fetch_all(update_all=False)
        authzr = self.storage.load_authorization_by_dns(self.account.name, dns)
        if authzr is not None and refresh:
            authzr = self.refresh(authzr)
        return authzr

    def authorize_dns(self, dns: str) -> messages.AuthorizationResource:
        """Reuse a stored authorization for ``dns`` or create one."""
        authzr = self.load(dns)
        if authzr is not None:
            logger.debug('Reusing authorization %s for %s', authzr.uri, dns)
            return authzr
        return self.create(dns)

    def import_authorization(self, url: str) -> messages.AuthorizationResource:
        """Fetch the authorization at ``url`` and store it.

        :raises .ConflictError: if it is stored already.

        """
        if self.storage.load_authorization_by_url(url) is not None:
            raise errors.ConflictError(url)
        authzr = messages.AuthorizationResource(
            body=self.acme.fetch_authorization(url), uri=url,
            registration=self.account.name)
        self.storage.new_authorization(authzr)
        return authzr

    def fetch_all(self, update_all: bool = False) -> List[messages.AuthorizationResource]:
        """Import every authorization the server lists for the account.

        :param bool update_all: Also refresh the ones stored already.

        """
        result = []
        for url in self.acme.fetch_authorization_list(self.account.regr):
            authzr = self.storage.load_authorization_by_url(url)
            if authzr is None:
                logger.info('Importing authorization %s', url)
                authzr = self.import_authorization(url)
            elif update_all:
                authzr = self.refresh(authzr)
            result.append(authzr)
        return result

    def list_authorizations(self, statuses: Optional[Iterable[str]] = None
                            ) -> List[storage_mod.AuthorizationInfo]:
        """Stored authorizations of the account."""
        return self.storage.authorization_infos(self.account.name, statuses)

    def respond(self, authzr: messages.AuthorizationResource,
                index: int) -> responders.ChallengeResponder:
        """Responder for challenge ``index``, seeded with stored data."""
        return responders.responder_for(authzr, index, self.account, self.verifier)

    def update_challenge(self, responder: responders.ChallengeResponder
                         ) -> messages.AuthorizationResource:
        """Persist the responder's proof, submit it and refresh.

        :returns: Refreshed authorization.

        """
        authzr = self.save_response(responder)
        self.acme.answer_challenge(responder.challenge, responder.send_payload())
        return self.refresh(authzr)

    def save_response(self, responder: responders.ChallengeResponder
                      ) -> messages.AuthorizationResource:
        """Persist the proof data of ``responder`` with its authorization."""
        authzr = responder.authzr.with_challenge_data(
            responder.challenge.uri, responder.challenge_data)
        self.storage.set_authorization(authzr)
        return authzr

    def perform_challenge(self, authzr: messages.AuthorizationResource, index: int,
                          disp: display.Display,
                          interactive: bool = True) -> messages.AuthorizationResource:
        """Answer challenge ``index`` from start to end.

        Without ``interactive`` the instructions are skipped, and
        failures are logged and leave the authorization unchanged instead
        of raising.

        :raises .ValidationError: if the self-check fails (interactive).

        """
        return self._perform(authzr, index, disp, interactive)[0]

    def _perform(self, authzr: messages.AuthorizationResource, index: int,
                 disp: display.Display, interactive: bool
                 ) -> Tuple[messages.AuthorizationResource, bool]:
        responder = self.respond(authzr, index)
        responder.initialize_response(disp)
        if interactive:
            responder.show_instructions(disp)
        try:
            responder.verify()
        except errors.ValidationError as error:
            authzr = self.save_response(responder)
            if interactive:
                raise
            logger.warning('Verification for %s failed: %s', authzr.body.dns, error)
            return authzr, False
        saved = self.save_response(responder)
        try:
            self.acme.answer_challenge(responder.challenge, responder.send_payload())
        except errors.ProtocolError as error:
            if interactive:
                raise
            logger.warning('Submitting challenge for %s failed: %s',
                           authzr.body.dns, error)
            return saved, False
        return self.refresh(saved), True

    def poll(self, authzr: messages.AuthorizationResource
             ) -> messages.AuthorizationResource:
        """Refresh until the status leaves pending, `poll_attempts` times
        at most, sleeping `poll_interval` seconds in between."""
        for attempt in range(self.poll_attempts):
            if authzr.body.status != messages.STATUS_PENDING:
                break
            if attempt == 0:
                logger.info('Waiting for authorization for %s to become valid',
                            authzr.body.dns)
            time.sleep(self.poll_interval)
            try:
                authzr = self.refresh(authzr)
            except (errors.TransportError, errors.ProtocolError) as error:
                logger.error("Couldn't update authorization for %s: %s",
                             authzr.body.dns, error)
        return authzr

    def authorize_batch(self, domains: Iterable[str], disp: display.Display
                        ) -> Dict[str, BatchResult]:
        """Authorize ``domains`` one after another, answering http-01
        challenges only.

        Failures for one domain are logged and the next domain is
        processed.

        :returns: Ordered mapping of domain to `BatchResult`.

        """
        disp.notification(
            'Make sure requests to your domains of the form '
            'http://<domain>/.well-known/acme-challenge/<token> are answered '
            'as text/plain with content:\n<token>.{0}'.format(self.thumbprint()),
            pause=False, wrap=False)
        results: Dict[str, BatchResult] = collections.OrderedDict()
        for dns in domains:
            try:
                results[dns] = self._authorize_one(dns, disp)
            except errors.Error as error:
                logger.error("Couldn't authorize %s: %s", dns, error)
                results[dns] = BatchResult.FAILED
            disp.notification('Status for {0}: {1}'.format(dns, results[dns].value),
                              pause=False)
        return results

    def thumbprint(self) -> str:
        """Base64url SHA-256 thumbprint of the account key."""
        return jose.b64encode(self.account.key.thumbprint(
            hash_function=challenges.HTTP01.thumbprint_hash_function)).decode()

    def _authorize_one(self, dns: str, disp: display.Display) -> BatchResult:
        authzr = self.authorize_dns(dns)
        if authzr.body.status != messages.STATUS_PENDING:
            return _final_result(authzr.body.status)

        answered: Set[int] = set()
        for index, chall in enumerate(authzr.body.challenges):
            if not isinstance(chall, challenges.HTTP01) or chall.is_validated:
                continue
            authzr, submitted = self._perform(authzr, index, disp, interactive=False)
            if submitted:
                answered.add(index)

        if not satisfiable(authzr.body, answered):
            logger.warning('Cannot batch authorize %s due to unsupported '
                           'challenge types', dns)
            return BatchResult.UNSUPPORTED

        authzr = self.poll(authzr)
        if authzr.body.status == messages.STATUS_PENDING:
            logger.warning('Waiting for authorization for %s timed out', dns)
            return BatchResult.TIMEOUT
        return _final_result(authzr.body.status)


def _final_result(status: str) -> BatchResult:
    if status == messages.STATUS_VALID:
        return BatchResult.VALID
    if status == messages.STATUS_PROCESSING:
        return BatchResult.PROCESSING
    return BatchResult.INVALID
