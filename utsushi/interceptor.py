"""
The filesystem capability.

A `VirtualFileSystem` answers filesystem requests for virtualized paths from
the asset store and hands all other requests to the original primitives,
unchanged. Application code receives the capability explicitly. The optional
process hooks in `utsushi.hooks` route the standard library's primitives
through the same object for code that cannot be changed.
"""

import asyncio
import builtins
import errno
import io
import logging
import os
import stat
import threading
from typing import cast, TYPE_CHECKING

from .config import VfsConfig
from .listing import DirectorySynthesizer
from .paths import ends_in_separator, Normalizer
from .resolver import Resolver

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from types import TracebackType
    from typing import Any, IO, TypeAlias

    from .store import AssetRecord, AssetStore

    PathType: TypeAlias = 'int | str | bytes | os.PathLike[str] | os.PathLike[bytes]'


__all__ = (
    'install',
    'installed',
    'uninstall',
    'VirtualDirEntry',
    'VirtualFileSystem',
)


logger = logging.getLogger(__name__)


# The original primitives, captured before any process hook can replace them.
_open = builtins.open
_stat = os.stat
_lstat = os.lstat
_listdir = os.listdir
_scandir = os.scandir

_FILE_MODE = stat.S_IFREG | 0o444
_DIRECTORY_MODE = stat.S_IFDIR | 0o555


def make_stat(mode: int, size: int) -> os.stat_result:
    # mode, ino, dev, nlink, uid, gid, size, atime, mtime, ctime
    return os.stat_result((mode, 0, 0, 1, 0, 0, size, 0, 0, 0))


def is_read_only(mode: str) -> bool:
    return not any(flag in mode for flag in 'wax+')


class AssetReader(io.BytesIO):
    """A read-only binary stream over a bundled file's content."""

    def __init__(self, record: 'AssetRecord', name: str) -> None:
        super().__init__(record.content)
        self.name = name
        self.mode = 'rb'

    def writable(self) -> bool:
        return False

    def write(self, data: object) -> int:
        raise io.UnsupportedOperation('bundled assets are read-only')

    def truncate(self, size: 'None | int' = None) -> int:
        raise io.UnsupportedOperation('bundled assets are read-only')


class VirtualDirEntry:
    """The counterpart to `os.DirEntry` for virtualized directories."""

    def __init__(
        self, directory: 'str | bytes', name: str, is_dir: bool, size: int
    ) -> None:
        if isinstance(directory, bytes):
            self.name: 'str | bytes' = os.fsencode(name)
            self.path: 'str | bytes' = os.path.join(directory, self.name) # type: ignore[arg-type]
        else:
            self.name = name
            self.path = os.path.join(directory, name)
        self._is_dir = is_dir
        self._size = size

    def __repr__(self) -> str:
        return f'<VirtualDirEntry {self.name!r}>'

    def __fspath__(self) -> 'str | bytes':
        return self.path

    def is_dir(self, *, follow_symlinks: bool = True) -> bool:
        return self._is_dir

    def is_file(self, *, follow_symlinks: bool = True) -> bool:
        return not self._is_dir

    def is_symlink(self) -> bool:
        return False

    def is_junction(self) -> bool:
        return False

    def inode(self) -> int:
        return 0

    def stat(self, *, follow_symlinks: bool = True) -> os.stat_result:
        if self._is_dir:
            return make_stat(_DIRECTORY_MODE, 0)
        return make_stat(_FILE_MODE, self._size)


class VirtualScandir:
    """An iterator over directory entries that also is a context manager."""

    def __init__(self, entries: 'list[VirtualDirEntry]') -> None:
        self._entries = iter(entries)

    def __iter__(self) -> 'VirtualScandir':
        return self

    def __next__(self) -> VirtualDirEntry:
        return next(self._entries)

    def __enter__(self) -> 'VirtualScandir':
        return self

    def __exit__(
        self,
        exc_type: 'None | type[BaseException]',
        exc_value: 'None | BaseException',
        traceback: 'None | TracebackType',
    ) -> None:
        self.close()

    def close(self) -> None:
        self._entries = iter(())


class VirtualFileSystem:
    """
    The read-only overlay of the asset store over the real filesystem. Every
    method first tries to answer from the store and otherwise delegates to the
    original primitive, which raises the same errors as it always does.
    """

    def __init__(self, store: 'AssetStore', config: 'None | VfsConfig' = None) -> None:
        self._config = config = config or VfsConfig()
        self._store = store
        self._normalizer = Normalizer(config)
        self._resolver = Resolver(store, config, self._normalizer)
        self._listing = DirectorySynthesizer(store, config, self._normalizer)

    def __repr__(self) -> str:
        return f'<utsushi-vfs {len(self._store)} assets>'

    @property
    def config(self) -> VfsConfig:
        return self._config

    @property
    def store(self) -> 'AssetStore':
        return self._store

    @property
    def normalizer(self) -> Normalizer:
        return self._normalizer

    @property
    def resolver(self) -> Resolver:
        return self._resolver

    @property
    def listing(self) -> DirectorySynthesizer:
        return self._listing

    # ----------------------------------------------------------------------------------
    # Lookup

    def lookup(self, path: 'PathType') -> 'None | AssetRecord':
        if isinstance(path, int):
            return None
        record = self._resolver.resolve(path)
        if record is not None and ends_in_separator(path):
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), path)
        return record

    def entries(self, path: 'PathType') -> 'None | dict[str, bool]':
        if isinstance(path, int):
            return None
        return self._listing.list_entries(path)

    def is_virtual(self, path: 'PathType') -> bool:
        try:
            return self.lookup(path) is not None or self.entries(path) is not None
        except NotADirectoryError:
            return True

    def _reject_directory(self, path: 'PathType') -> None:
        if self.entries(path) is not None:
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)

    # ----------------------------------------------------------------------------------
    # Full-content reads

    def read_bytes(self, path: 'PathType') -> bytes:
        record = self.lookup(path)
        if record is not None:
            return record.content
        self._reject_directory(path)
        return _read_real_bytes(path)

    def read_text(
        self,
        path: 'PathType',
        encoding: 'None | str' = None,
        errors: 'None | str' = None,
    ) -> str:
        record = self.lookup(path)
        if record is not None:
            return record.text(encoding or 'utf8', errors or 'strict')
        self._reject_directory(path)
        return _read_real_text(path, encoding, errors)

    def open(
        self,
        file: 'PathType',
        mode: str = 'r',
        buffering: int = -1,
        encoding: 'None | str' = None,
        errors: 'None | str' = None,
        newline: 'None | str' = None,
        closefd: bool = True,
        opener: object = None,
    ) -> 'IO[Any]':
        if is_read_only(mode):
            record = self.lookup(file)
            if record is not None:
                reader = AssetReader(record, os.fsdecode(file)) # type: ignore[arg-type]
                if 'b' in mode:
                    return reader
                return io.TextIOWrapper(
                    reader, encoding=encoding or 'utf8', errors=errors, newline=newline)
            self._reject_directory(file)

        return _open( # type: ignore[call-overload, no-any-return]
            file, mode, buffering, encoding, errors, newline, closefd, opener)

    async def aread_bytes(self, path: 'PathType') -> bytes:
        record = self.lookup(path)
        if record is not None:
            return record.content
        self._reject_directory(path)
        return await asyncio.to_thread(_read_real_bytes, path)

    async def aread_text(
        self,
        path: 'PathType',
        encoding: 'None | str' = None,
        errors: 'None | str' = None,
    ) -> str:
        record = self.lookup(path)
        if record is not None:
            return record.text(encoding or 'utf8', errors or 'strict')
        self._reject_directory(path)
        return await asyncio.to_thread(_read_real_text, path, encoding, errors)

    # ----------------------------------------------------------------------------------
    # Existence and metadata

    def stat(
        self,
        path: 'PathType',
        *,
        dir_fd: 'None | int' = None,
        follow_symlinks: bool = True,
    ) -> os.stat_result:
        if dir_fd is None:
            virtual = self._virtual_stat(path)
            if virtual is not None:
                return virtual
        return _stat(path, dir_fd=dir_fd, follow_symlinks=follow_symlinks)

    def lstat(self, path: 'PathType', *, dir_fd: 'None | int' = None) -> os.stat_result:
        if dir_fd is None:
            virtual = self._virtual_stat(path)
            if virtual is not None:
                return virtual
        return _lstat(path, dir_fd=dir_fd)

    def _virtual_stat(self, path: 'PathType') -> 'None | os.stat_result':
        record = self.lookup(path)
        if record is not None:
            return make_stat(_FILE_MODE, len(record.content))
        if self.entries(path) is not None:
            return make_stat(_DIRECTORY_MODE, 0)
        return None

    def exists(self, path: 'PathType') -> bool:
        try:
            self.stat(path)
        except (OSError, ValueError):
            return False
        return True

    def isfile(self, path: 'PathType') -> bool:
        try:
            return stat.S_ISREG(self.stat(path).st_mode)
        except (OSError, ValueError):
            return False

    def isdir(self, path: 'PathType') -> bool:
        try:
            return stat.S_ISDIR(self.stat(path).st_mode)
        except (OSError, ValueError):
            return False

    async def astat(self, path: 'PathType') -> os.stat_result:
        virtual = self._virtual_stat(path)
        if virtual is not None:
            return virtual
        return await asyncio.to_thread(_stat, path)

    async def aexists(self, path: 'PathType') -> bool:
        try:
            if self._virtual_stat(path) is not None:
                return True
        except NotADirectoryError:
            return False
        return await asyncio.to_thread(_real_exists, path)

    # ----------------------------------------------------------------------------------
    # Directories

    def listdir(self, path: 'PathType' = '.') -> 'list[str] | list[bytes]':
        entries = self.entries(path)
        if entries is None:
            return _listdir(path)
        names = sorted(entries)
        if isinstance(path, bytes):
            return [os.fsencode(name) for name in names]
        return names

    async def alistdir(self, path: 'PathType' = '.') -> 'list[str] | list[bytes]':
        if self.entries(path) is not None:
            return self.listdir(path)
        return await asyncio.to_thread(_listdir, path)

    def scandir(self, path: 'PathType' = '.') -> 'VirtualScandir | Iterator[os.DirEntry[str]]':
        entries = self._virtual_dir_entries(path)
        if entries is None:
            return _scandir(path) # type: ignore[arg-type]
        return VirtualScandir(entries)

    async def ascandir(
        self, path: 'PathType' = '.'
    ) -> 'AsyncIterator[VirtualDirEntry | os.DirEntry[str]]':
        entries = self._virtual_dir_entries(path)
        if entries is not None:
            for entry in entries:
                yield entry
            return

        for real_entry in await asyncio.to_thread(_list_real_entries, path):
            yield real_entry

    def _virtual_dir_entries(self, path: 'PathType') -> 'None | list[VirtualDirEntry]':
        entries = self.entries(path)
        if entries is None:
            return None

        directory = os.fspath(cast('str | bytes', path))
        result = []
        for name in sorted(entries):
            is_dir = entries[name]
            size = 0
            if not is_dir:
                record = self.lookup(self._normalizer(directory) + '/' + name)
                size = 0 if record is None else len(record.content)
            result.append(VirtualDirEntry(directory, name, is_dir, size))
        return result


# --------------------------------------------------------------------------------------
# Fallthrough helpers


def _read_real_bytes(path: 'PathType') -> bytes:
    with _open(path, mode='rb') as file:
        return file.read()


def _read_real_text(path: 'PathType', encoding: 'None | str', errors: 'None | str') -> str:
    with _open(path, mode='r', encoding=encoding, errors=errors) as file:
        return file.read()


def _real_exists(path: 'PathType') -> bool:
    try:
        _stat(path)
    except (OSError, ValueError):
        return False
    return True


def _list_real_entries(path: 'PathType') -> 'list[os.DirEntry[str]]':
    with _scandir(path) as iterator: # type: ignore[arg-type]
        return list(iterator)


# --------------------------------------------------------------------------------------
# Process-wide installation


_installed: 'None | VirtualFileSystem' = None
_install_lock = threading.Lock()


def install(
    store: 'AssetStore',
    config: 'None | VfsConfig' = None,
    *,
    hooks: bool = False,
) -> VirtualFileSystem:
    """
    Create the process's virtual filesystem. Only the first call has any
    effect. Later calls return the existing capability unchanged.
    """
    global _installed

    with _install_lock:
        if _installed is not None:
            logger.debug('virtual filesystem already installed; ignoring repeat')
            return _installed

        vfs = VirtualFileSystem(store, config)
        if hooks:
            from .hooks import ProcessHooks
            ProcessHooks.activate(vfs)

        _installed = vfs
        logger.debug('installed %r', vfs)
        return vfs


def installed() -> 'None | VirtualFileSystem':
    return _installed


def uninstall() -> None:
    global _installed

    with _install_lock:
        if _installed is None:
            return
        from .hooks import ProcessHooks
        ProcessHooks.deactivate()
        _installed = None
