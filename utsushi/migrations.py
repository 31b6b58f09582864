"""
Binding of the module loader into a migration client's plugin contract.

A migration client is created by a factory that takes a configuration
mapping. When that mapping's `migrations` section names a `directory`, the
client would scan the real filesystem for migration scripts. `ClientHook`
wraps the factory so that the directory is replaced by a
`VirtualMigrationSource`, which lists and loads the scripts bundled under the
tolerated namespace instead. Any other consumer of bundled scripts needs an
adapter of its own.
"""

from collections.abc import Mapping
import functools
import importlib.abc
import logging
import sys
from typing import Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from importlib.machinery import ModuleSpec
    from types import ModuleType
    from typing import Any

    from .loader import ModuleLoader


__all__ = ('ClientHook', 'VirtualMigrationSource')


logger = logging.getLogger(__name__)


DIRECTORY = 'directory'
MIGRATION_SOURCE = 'migration_source'
MIGRATIONS = 'migrations'


class VirtualMigrationSource:
    """The migration source backed by bundled scripts."""

    def __init__(self, loader: 'ModuleLoader') -> None:
        self._loader = loader

    def __repr__(self) -> str:
        return f'<utsushi-migrations {self._loader.vfs.config.namespace_root}>'

    def get_migrations(self) -> 'list[str]':
        config = self._loader.vfs.config
        prefix = config.namespace_root + '/'
        names = []
        for key in self._loader.vfs.store.under(prefix):
            name = key[len(prefix):]
            if '/' in name or name.startswith('_'):
                continue
            if config.script_suffix and not name.endswith(config.script_suffix):
                continue
            names.append(name)
        names.sort()
        logger.debug('found %d bundled migrations', len(names))
        return names

    def get_migration_name(self, migration: str) -> str:
        return migration

    def get_migration(self, migration: str) -> 'ModuleType':
        return self._loader.load(migration)


class _HookedLoader(importlib.abc.Loader):
    """Loader delegating to the original one, but patching after execution."""

    def __init__(self, loader: 'importlib.abc.Loader', hook: 'ClientHook') -> None:
        self._loader = loader
        self._hook = hook

    def __getattr__(self, name: str) -> object:
        return getattr(self._loader, name)

    def create_module(self, spec: 'ModuleSpec') -> 'None | ModuleType':
        return self._loader.create_module(spec)

    def exec_module(self, module: 'ModuleType') -> None:
        self._loader.exec_module(module)
        self._hook.patch(module)


class ClientHook(importlib.abc.MetaPathFinder):
    """
    Observer of a migration client's construction. The hook wraps the factory
    named `factory` in module `module`, either right away if the module has
    been imported already or as soon as it is.
    """

    def __init__(
        self,
        module: str,
        factory: str,
        source: VirtualMigrationSource,
    ) -> None:
        self._module = module
        self._factory = factory
        self._source = source
        self._installed = False
        self._originals: 'list[tuple[ModuleType, Callable[..., Any]]]' = []

    def __repr__(self) -> str:
        return f'<utsushi-hook {self._module}.{self._factory}>'

    @property
    def source(self) -> VirtualMigrationSource:
        return self._source

    # ----------------------------------------------------------------------------------

    def install(self) -> 'ClientHook':
        if self._installed:
            return self
        sys.meta_path.insert(0, self)
        module = sys.modules.get(self._module)
        if module is not None:
            self.patch(module)
        self._installed = True
        return self

    def uninstall(self) -> None:
        if not self._installed:
            return
        if self in sys.meta_path:
            sys.meta_path.remove(self)
        while self._originals:
            module, factory = self._originals.pop()
            setattr(module, self._factory, factory)
        self._installed = False

    def find_spec(
        self,
        fullname: str,
        path: 'None | Sequence[str]' = None,
        target: 'None | ModuleType' = None,
    ) -> 'None | ModuleSpec':
        if fullname != self._module:
            return None

        for finder in sys.meta_path:
            if finder is self or not hasattr(finder, 'find_spec'):
                continue
            spec = finder.find_spec(fullname, path, target)
            if spec is not None:
                if spec.loader is not None:
                    spec.loader = _HookedLoader(spec.loader, self)
                return spec
        return None

    # ----------------------------------------------------------------------------------

    def patch(self, module: 'ModuleType') -> None:
        factory = getattr(module, self._factory, None)
        if factory is None:
            logger.warning('module %s has no factory %s', self._module, self._factory)
            return
        if getattr(factory, '__utsushi_wrapped__', None) is not None:
            return

        self._originals.append((module, factory))
        setattr(module, self._factory, self.wrap(factory))
        logger.debug('observing %s.%s', self._module, self._factory)

    def wrap(self, factory: 'Callable[..., Any]') -> 'Callable[..., Any]':
        @functools.wraps(factory)
        def wrapper(*args: object, **kwargs: object) -> object:
            if args:
                args = (self.inject(args[0]), *args[1:])
            elif 'config' in kwargs:
                kwargs['config'] = self.inject(kwargs['config'])
            return factory(*args, **kwargs)

        setattr(wrapper, '__utsushi_wrapped__', factory)
        return wrapper

    def inject(self, config: object) -> object:
        """
        Replace the configuration's migration directory with the virtual
        source. Configurations without a directory, or with a migration source
        of their own, are returned unchanged.
        """
        if not isinstance(config, Mapping):
            return config
        migrations = config.get(MIGRATIONS)
        if not isinstance(migrations, Mapping) or DIRECTORY not in migrations:
            return config
        if migrations.get(MIGRATION_SOURCE) is not None:
            return config

        logger.info(
            'replacing migration directory %r with bundled migrations',
            migrations[DIRECTORY])
        updated = {k: v for k, v in migrations.items() if k != DIRECTORY}
        updated[MIGRATION_SOURCE] = self._source
        return {**config, MIGRATIONS: updated}
