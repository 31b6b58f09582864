import logging
from typing import TYPE_CHECKING

from .paths import Normalizer

if TYPE_CHECKING:
    from .config import VfsConfig
    from .store import AssetStore


__all__ = ('DirectorySynthesizer',)


logger = logging.getLogger(__name__)


class DirectorySynthesizer:
    """
    Directory listings reconstructed from the asset store's flat key space.
    Listings are computed on every call; the store is bounded by the number of
    bundled assets.
    """

    def __init__(
        self,
        store: 'AssetStore',
        config: 'VfsConfig',
        normalizer: 'None | Normalizer' = None,
    ) -> None:
        self._store = store
        self._normalize = normalizer or Normalizer(config)
        self._namespace_root = config.namespace_root

    def list_children(self, raw: object) -> 'None | set[str]':
        entries = self.list_entries(raw)
        return None if entries is None else set(entries)

    def list_entries(self, raw: object) -> 'None | dict[str, bool]':
        """
        Map the names of the directory's immediate children to whether they are
        directories themselves. Return `None` if the directory is not
        virtualized at all.
        """
        path = self._normalize(raw)
        # The asset root only stands in for the base directory. Any other path
        # that collapses to the root, such as "." or "/", stays real.
        if path == '/' and not self._normalize.names_base(raw):
            return None
        prefixes = [path.rstrip('/') + '/']

        # Requests for the namespace may arrive under any perceived root.
        root = self._namespace_root
        if path != root and path.endswith(root):
            prefixes.append(root + '/')

        entries: 'dict[str, bool]' = {}
        for prefix in prefixes:
            for key in self._store.under(prefix):
                name, slash, _ = key[len(prefix):].partition('/')
                if name:
                    entries[name] = entries.get(name, False) or bool(slash)

        if not entries:
            return None
        logger.debug('listed %d entries for %r', len(entries), raw)
        return entries

    def is_directory(self, raw: object) -> bool:
        return self.list_entries(raw) is not None
