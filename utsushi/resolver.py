"""
Matching of arbitrary incoming paths against the asset store.

Packaged applications compute paths relative to several possible roots, so a
single normalization cannot anticipate all of them. The resolver therefore
tries three strategies in order, from least to most heuristic, and the first
hit wins:

 1. exact match of the normalized path;
 2. suffix match, with the normalized path ending in a key or a key ending in
    the normalized path;
 3. filename match inside the tolerated namespace, when the request names a
    file under a namespace segment and exactly one key in the namespace has
    that filename.

A miss is not an error. It means the path is not virtualized.
"""

from collections import Counter
import logging
from typing import Callable, NamedTuple, TYPE_CHECKING

from .paths import Normalizer, split_name

if TYPE_CHECKING:
    from .config import VfsConfig
    from .store import AssetRecord, AssetStore


__all__ = ('Resolution', 'Resolver')


logger = logging.getLogger(__name__)


class Resolution(NamedTuple):
    record: 'AssetRecord'
    strategy: str


class Resolver:

    def __init__(
        self,
        store: 'AssetStore',
        config: 'VfsConfig',
        normalizer: 'None | Normalizer' = None,
    ) -> None:
        self._store = store
        self._normalize = normalizer or Normalizer(config)
        self._namespace_segment = f'/{config.namespace}/'

        # Index the namespace by filename. Names that occur more than once are
        # left out, since a filename alone cannot tell them apart.
        counts = Counter(split_name(key)[1] for key in store.under(config.namespace_root))
        self._ambiguous = frozenset(name for name, count in counts.items() if count > 1)
        self._by_name = {
            split_name(key)[1]: key
            for key in store.under(config.namespace_root)
            if split_name(key)[1] not in self._ambiguous
        }
        if self._ambiguous:
            logger.warning(
                'filenames %s occur more than once under %s; '
                'they only resolve by exact or suffix match',
                ', '.join(sorted(self._ambiguous)),
                config.namespace_root,
            )

        # By length, then lexicographically, for deterministic suffix matches
        self._keys = sorted(store, key=lambda k: (len(k), k))

        self._strategies: 'tuple[tuple[str, Callable[[str, None | str], None | str]], ...]' = (
            ('exact', self._match_exact),
            ('suffix', self._match_suffix),
            ('filename', self._match_filename),
        )

    @property
    def store(self) -> 'AssetStore':
        return self._store

    @property
    def normalizer(self) -> Normalizer:
        return self._normalize

    @property
    def ambiguous_names(self) -> 'frozenset[str]':
        return self._ambiguous

    # ----------------------------------------------------------------------------------

    def resolve(self, raw: object, within: 'None | str' = None) -> 'None | AssetRecord':
        resolution = self.explain(raw, within)
        return None if resolution is None else resolution.record

    def explain(self, raw: object, within: 'None | str' = None) -> 'None | Resolution':
        """
        Resolve the path and also report the strategy that matched. If `within`
        names a directory, only keys below that directory are candidates.
        """
        path = self._normalize(raw)
        for strategy, match in self._strategies:
            key = match(path, within)
            if key is not None:
                logger.debug('resolved %r to %s by %s match', raw, key, strategy)
                return Resolution(self._store[key], strategy)
        return None

    def _match_exact(self, path: str, within: 'None | str') -> 'None | str':
        return path if path in self._store and _below(path, within) else None

    def _match_suffix(self, path: str, within: 'None | str') -> 'None | str':
        if path == '/':
            return None

        # The longest key the path ends with is the most specific one.
        for key in reversed(self._keys):
            if len(key) < len(path) and path.endswith(key) and _below(key, within):
                return key

        for key in self._keys:
            if len(key) > len(path) and key.endswith(path) and _below(key, within):
                return key
        return None

    def _match_filename(self, path: str, within: 'None | str') -> 'None | str':
        if self._namespace_segment not in path:
            return None
        _, name = split_name(path)
        key = self._by_name.get(name)
        return key if key is not None and _below(key, within) else None


def _below(key: str, directory: 'None | str') -> bool:
    return directory is None or key.startswith(directory.rstrip('/') + '/')
