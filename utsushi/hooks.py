"""
Opt-in routing of the standard library's filesystem primitives through a
virtual filesystem.

Code that receives a `VirtualFileSystem` should use it directly. These hooks
exist for application code that calls `open()`, `os.stat()`, `os.listdir()`,
and `os.scandir()` itself and cannot be changed. Since `os.path.exists()`,
`os.path.isfile()`, `os.path.isdir()`, `os.walk()`, and `pathlib.Path` are
implemented in terms of these primitives, they see the bundled assets, too.
"""

import builtins
import io
import logging
import os
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any

    from .interceptor import VirtualFileSystem


__all__ = ('ProcessHooks',)


logger = logging.getLogger(__name__)


class ProcessHooks:
    """
    The replacements for the standard library's filesystem primitives. There is
    at most one active instance per process, so activating hooks a second time
    does not wrap the primitives twice.
    """

    _active: 'None | ProcessHooks' = None
    _lock = threading.Lock()

    @classmethod
    def activate(cls, vfs: 'VirtualFileSystem') -> 'ProcessHooks':
        with cls._lock:
            if cls._active is not None:
                if cls._active._vfs is not vfs:
                    logger.warning(
                        'process hooks already route through %r; ignoring %r',
                        cls._active._vfs, vfs)
                return cls._active

            hooks = cls(vfs)
            hooks._apply()
            cls._active = hooks
            return hooks

    @classmethod
    def deactivate(cls) -> None:
        with cls._lock:
            if cls._active is None:
                return
            cls._active._restore()
            cls._active = None

    @classmethod
    def active(cls) -> 'None | ProcessHooks':
        return cls._active

    def __init__(self, vfs: 'VirtualFileSystem') -> None:
        self._vfs = vfs
        self._saved: 'list[tuple[object, str, Any]]' = []

    @property
    def vfs(self) -> 'VirtualFileSystem':
        return self._vfs

    def _apply(self) -> None:
        vfs = self._vfs
        for owner, name, replacement in (
            (builtins, 'open', vfs.open),
            (io, 'open', vfs.open),
            (os, 'stat', vfs.stat),
            (os, 'lstat', vfs.lstat),
            (os, 'listdir', vfs.listdir),
            (os, 'scandir', vfs.scandir),
        ):
            self._saved.append((owner, name, getattr(owner, name)))
            setattr(owner, name, replacement)
        logger.debug('routed filesystem primitives through %r', vfs)

    def _restore(self) -> None:
        while self._saved:
            owner, name, original = self._saved.pop()
            setattr(owner, name, original)
        logger.debug('restored filesystem primitives')
