"""
Canonical paths for the asset store.

A canonical path is slash-separated, starts with exactly one slash, and has no
URI scheme, drive letter, build output prefix, or base directory prefix. The
normalizer never fails. Whatever it is handed, it produces some canonical path
for the resolver to try.
"""

import os
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import VfsConfig


__all__ = ('canonical', 'ends_in_separator', 'Normalizer', 'split_name')


_SCHEME = re.compile(r'^[A-Za-z][A-Za-z0-9+.\-]*://')
_DRIVE = re.compile(r'^/?[A-Za-z]:(?=/|$)')


def _to_text(raw: object) -> str:
    if isinstance(raw, str):
        return raw
    try:
        if isinstance(raw, bytes):
            return os.fsdecode(raw)
        return os.fspath(raw) if isinstance(raw, os.PathLike) else str(raw)
    except Exception:
        # Undecodable bytes or a broken __fspath__/__str__.
        try:
            return repr(raw)
        except Exception:
            return ''


def _squash(path: str) -> str:
    """Collapse separators, resolve dot segments, and anchor at the root."""
    parts: 'list[str]' = []
    for part in path.split('/'):
        if part == '' or part == '.':
            continue
        if part == '..':
            if parts:
                parts.pop()
            continue
        parts.append(part)
    return '/' + '/'.join(parts)


def canonical(raw: object) -> str:
    """
    Normalize separators and segments only. The asset store uses this for its
    own keys, which the bundling pass already emits relative to the asset root.
    """
    return _squash(_to_text(raw).replace('\\', '/'))


def ends_in_separator(raw: object) -> bool:
    """Determine whether the raw path ends in a separator and thus names a directory."""
    return _to_text(raw).endswith(('/', '\\'))


def split_name(path: str) -> 'tuple[str, str]':
    """Split a canonical path into its parent directory and last segment."""
    parent, _, name = path.rpartition('/')
    return (parent or '/'), name


class Normalizer:
    """
    The ordered normalization steps. The build output segment and base
    directory come from the configuration and are fixed for the lifetime of
    the normalizer.
    """

    def __init__(self, config: 'VfsConfig') -> None:
        self._build_marker = f'/{config.build_segment}/'
        self._base_dir = self._prepare_base(config.base_dir)

    def _prepare_base(self, base_dir: 'None | str') -> 'None | str':
        if not base_dir:
            return None
        # Incoming paths lose the build prefix before they are compared to the base.
        base = self._strip_prefixes(_to_text(base_dir).replace('\\', '/'))
        base = _squash(self._cut_build(base))
        return None if base == '/' else base

    @staticmethod
    def _strip_prefixes(path: str) -> str:
        match = _SCHEME.match(path)
        if match is not None:
            path = path[match.end():]
        match = _DRIVE.match(path)
        if match is not None:
            path = path[match.end():]
        return path

    def _cut_build(self, path: str) -> str:
        if not path.startswith('/'):
            path = '/' + path
        index = path.rfind(self._build_marker)
        if index != -1:
            path = path[index + len(self._build_marker) - 1:]
        return path

    @property
    def base_dir(self) -> 'None | str':
        return self._base_dir

    def names_base(self, raw: object) -> bool:
        """Determine whether the path is the base directory itself."""
        if self._base_dir is None:
            return False
        path = self._strip_prefixes(_to_text(raw).replace('\\', '/'))
        return _squash(self._cut_build(path)) == self._base_dir

    def __call__(self, raw: object) -> str:
        return self.normalize(raw)

    def normalize(self, raw: object) -> str:
        path = _to_text(raw).replace('\\', '/')
        path = self._strip_prefixes(path)
        path = self._cut_build(path)

        base = self._base_dir
        if base is not None:
            # The base is canonical, so compare against the squashed form.
            squashed = _squash(path)
            if squashed == base:
                return '/'
            if squashed.startswith(base + '/'):
                return squashed[len(base):]
            return squashed

        return _squash(path)
