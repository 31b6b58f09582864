"""
Loading of scripts that exist only in the asset store.

A script moves through resolving, rewriting, and executing before its exports
are cached for the lifetime of the process. Resolving looks the module key up
in the tolerated namespace, rewriting turns its import statements into calls
of a constrained dependency resolver (see `utsushi.rewrite`), and executing
runs it in a fresh scope (see `utsushi.sandbox`). Errors in any of these steps
are logged with the script's path and an excerpt of its source and then
re-raised. Failed loads leave no trace in the cache.

The dependency resolver serves, in order:

 1. a small, fixed set of host capabilities, including this virtual filesystem
    as `utsushi.fs`, and whitelisted third-party packages;
 2. relative imports, which resolve against the importing script's directory
    and load through this loader;
 3. any other module the host can import. If the import fails, the script
    receives an empty placeholder, since migration scripts must cope with
    optional dependencies missing from a packaged application.
"""

import importlib
import importlib.metadata as md
import importlib.util
import logging
import threading
from types import ModuleType
from typing import TYPE_CHECKING

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from . import sandbox
from .interceptor import VirtualFileSystem
from .paths import canonical, split_name
from .rewrite import compile_script

if TYPE_CHECKING:
    from .config import VfsConfig
    from .store import AssetRecord, AssetStore


__all__ = (
    'HOST_CAPABILITIES',
    'ModuleExecutionError',
    'ModuleLoader',
    'Placeholder',
    'VirtualModuleNotFoundError',
)


logger = logging.getLogger(__name__)


HOST_CAPABILITIES = ('os', 'os.path', 'json', 'logging')
FS_CAPABILITY = 'utsushi.fs'


class VirtualModuleNotFoundError(ModuleNotFoundError):
    """No script for the module key in the tolerated namespace."""


class ModuleExecutionError(ImportError):
    """A script failed to parse, to rewrite, or to run."""

    def __init__(self, key: str, excerpt: str) -> None:
        super().__init__(f'unable to load "{key}" from virtual store', name=key, path=key)
        self.key = key
        self.excerpt = excerpt


class Placeholder(ModuleType):
    """
    Stand-in for an optional dependency that is not available. Looking up any
    public attribute yields `None`.
    """

    def __getattr__(self, name: str) -> None:
        if name.startswith('__') and name.endswith('__'):
            raise AttributeError(name)
        return None

    def __repr__(self) -> str:
        return f'<placeholder {self.__name__!r}>'


class ModuleLoader:

    def __init__(
        self,
        source: 'VirtualFileSystem | AssetStore',
        config: 'None | VfsConfig' = None,
    ) -> None:
        if isinstance(source, VirtualFileSystem):
            self._vfs = source
        else:
            self._vfs = VirtualFileSystem(source, config)
        self._config = config = self._vfs.config
        self._root = config.namespace_root
        self._suffix = config.script_suffix

        self._lock = threading.RLock()
        self._cache: 'dict[str, ModuleType]' = {}
        self._loading: 'dict[str, ModuleType]' = {}
        self._dependencies: 'dict[str, object]' = {}

        self._capabilities: 'dict[str, object]' = {
            name: importlib.import_module(name) for name in HOST_CAPABILITIES
        }
        self._capabilities[FS_CAPABILITY] = self._vfs
        # "import utsushi.fs" binds "utsushi", which then has to offer "fs".
        for name in list(self._capabilities):
            parent, _, child = name.rpartition('.')
            if parent and parent not in self._capabilities:
                namespace = ModuleType(parent)
                setattr(namespace, child, self._capabilities[name])
                self._capabilities[parent] = namespace

        self._allowed: 'dict[str, Requirement]' = {}
        for entry in config.allowed_packages:
            try:
                requirement = Requirement(entry)
            except InvalidRequirement as x:
                raise ValueError(f'invalid allowed package "{entry}" ({x})') from x
            self._allowed[canonicalize_name(requirement.name)] = requirement

    def __repr__(self) -> str:
        return f'<utsushi-loader {self._root}>'

    @property
    def vfs(self) -> VirtualFileSystem:
        return self._vfs

    @property
    def loaded(self) -> 'tuple[str, ...]':
        with self._lock:
            return tuple(sorted(self._cache))

    # ----------------------------------------------------------------------------------

    def locate(self, module_key: str) -> 'AssetRecord':
        key = str(module_key).replace('\\', '/')
        candidates = [key]
        if self._suffix and not key.endswith(self._suffix):
            candidates.append(key + self._suffix)

        for candidate in candidates:
            if not candidate.startswith('/'):
                candidate = f'{self._root}/{candidate}'
            record = self._vfs.resolver.resolve(candidate, within=self._root)
            if record is not None:
                return record

        raise VirtualModuleNotFoundError(
            f'module "{module_key}" not found in virtual store', name=str(module_key))

    def load(self, module_key: str) -> ModuleType:
        return self._load_record(self.locate(module_key))

    def _display_name(self, path: str) -> str:
        name = path[1:]
        if self._suffix and name.endswith(self._suffix):
            name = name[:-len(self._suffix)]
        return name.replace('/', '.')

    def _depth(self, path: str) -> int:
        return path[len(self._root):].count('/')

    def _load_record(self, record: 'AssetRecord') -> ModuleType:
        path = record.path
        with self._lock:
            exports = self._cache.get(path)
            if exports is not None:
                return exports

            # A script required while it executes is part of an import cycle.
            exports = self._loading.get(path)
            if exports is not None:
                logger.debug('import cycle through %s', path)
                return exports

            exports = ModuleType(self._display_name(path))
            exports.__file__ = path
            self._loading[path] = exports
            try:
                self._execute(record, exports)
            finally:
                del self._loading[path]

            self._cache[path] = exports
            logger.debug('loaded %s', path)
            return exports

    def _execute(self, record: 'AssetRecord', exports: ModuleType) -> None:
        source = None
        try:
            source = importlib.util.decode_source(record.content)
            code = compile_script(source, record.path, self._depth(record.path))
            sandbox.run(
                code,
                exports,
                self._make_require(record.path),
                exports.__name__,
                filename=record.path,
                extras={'loader': self},
            )
        except Exception as x:
            excerpt = self._excerpt(record, source)
            logger.error(
                'failed to load %s: %s\n%s', record.path, x, excerpt)
            raise ModuleExecutionError(record.path, excerpt) from x

    def _excerpt(self, record: 'AssetRecord', source: 'None | str') -> str:
        text = record.content.decode('utf8', 'replace') if source is None else source
        limit = self._config.excerpt_length
        return text if len(text) <= limit else text[:limit] + '...'

    # ----------------------------------------------------------------------------------
    # Dependency resolution

    def _make_require(self, origin: str) -> 'sandbox.RequireType':
        def require(name: str, member: 'None | str' = None) -> object:
            if member is not None and name.strip('.') == '':
                # "from . import helpers" names a script, not an attribute.
                return self._require_relative(name + member, origin)

            module = self._require(name, origin)
            if member is None:
                return module
            if isinstance(module, Placeholder):
                return None
            try:
                return getattr(module, member)
            except AttributeError:
                pass

            # The member may be a submodule that has not been imported yet.
            submodule = self._require(f'{name}.{member}', origin)
            if isinstance(submodule, Placeholder):
                raise ImportError(
                    f'cannot import name "{member}" from "{name}"', name=name)
            return submodule

        return require

    def _require(self, name: str, origin: str) -> object:
        if name.startswith('.'):
            return self._require_relative(name, origin)

        capability = self._capabilities.get(name)
        if capability is not None:
            return capability

        with self._lock:
            dependency = self._dependencies.get(name)
            if dependency is None:
                dependency = self._import(name, origin)
                self._dependencies[name] = dependency
            return dependency

    def _import(self, name: str, origin: str) -> object:
        requirement = self._allowed.get(canonicalize_name(name.partition('.')[0]))
        try:
            module = importlib.import_module(name)
        except ImportError as x:
            logger.warning(
                'module "%s" required by %s is unavailable (%s); using placeholder',
                name, origin, x)
            return Placeholder(name)

        if requirement is not None and not self._satisfies(requirement):
            return Placeholder(name)
        return module

    def _satisfies(self, requirement: Requirement) -> bool:
        if not requirement.specifier:
            return True
        try:
            version = md.version(requirement.name)
        except md.PackageNotFoundError:
            # Bundled packages often lack their distribution metadata.
            logger.debug('no metadata for allowed package "%s"', requirement.name)
            return True
        if requirement.specifier.contains(version, prereleases=True):
            return True
        logger.warning(
            'package "%s" has version %s, which does not satisfy "%s"; '
            'using placeholder', requirement.name, version, requirement)
        return False

    def _require_relative(self, name: str, origin: str) -> object:
        stripped = name.lstrip('.')
        level = len(name) - len(stripped)

        directory = split_name(origin)[0]
        for _ in range(level - 1):
            if directory == self._root:
                break
            directory = split_name(directory)[0]

        base = canonical(f'{directory}/{stripped.replace(".", "/")}')
        if not base.startswith(self._root):
            base = self._root
        for path in (f'{base}{self._suffix}', f'{base}/__init__{self._suffix}'):
            if path in self._vfs.store:
                return self._load_record(self._vfs.store[path])

        logger.warning(
            'relative module "%s" required by %s is not bundled; using placeholder',
            name, origin)
        return Placeholder(name)
