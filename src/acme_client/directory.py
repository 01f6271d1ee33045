"""Directory catalog: endpoints per server root URL."""
import logging
from typing import Dict
from typing import Optional

from acme_client import client
from acme_client import messages
from acme_client import storage as storage_mod

logger = logging.getLogger(__name__)


class DirectoryCatalog:
    """Resolves and caches directories.

    A directory is fetched at most once per root URL unless `refresh` is
    called explicitly; fetched directories are persisted in ``storage``.

    :ivar .Storage storage:
    :ivar .ClientNetwork net: Used for the unsigned directory GET.

    """

    def __init__(self, storage: storage_mod.Storage, net: client.ClientNetwork) -> None:
        self.storage = storage
        self.net = net
        self._cache: Dict[str, messages.DirectoryResource] = {}

    def get(self, root_url: str) -> messages.DirectoryResource:
        """Directory for ``root_url``, fetching it if unknown.

        :raises .ProtocolError: if the server document is unusable.
        :rtype: `.DirectoryResource`

        """
        dirr: Optional[messages.DirectoryResource] = self._cache.get(root_url)
        if dirr is None:
            dirr = self.storage.load_directory(root_url)
        if dirr is None:
            dirr = self._fetch(root_url)
            self.storage.new_directory(dirr)
        self._cache[root_url] = dirr
        return dirr

    def refresh(self, root_url: str) -> messages.DirectoryResource:
        """Fetch the directory again and overwrite the stored one."""
        dirr = self._fetch(root_url)
        if self.storage.load_directory(root_url) is None:
            self.storage.new_directory(dirr)
        else:
            self.storage.set_directory(dirr)
        self._cache[root_url] = dirr
        return dirr

    def endpoint(self, root_url: str, name: str) -> str:
        """URL of endpoint ``name`` (e.g. ``new-authz``), empty if absent."""
        return self.get(root_url).body[name]

    def _fetch(self, root_url: str) -> messages.DirectoryResource:
        logger.info('Fetching directory %s', root_url)
        body = client.Client.get_directory(root_url, self.net)
        return messages.DirectoryResource(uri=root_url, body=body)
