__version__ = '0.3.0'

from .config import VfsConfig
from .interceptor import install, installed, uninstall, VirtualFileSystem
from .loader import ModuleExecutionError, ModuleLoader, VirtualModuleNotFoundError
from .migrations import ClientHook, VirtualMigrationSource
from .store import AssetRecord, AssetStore

__all__ = (
    'AssetRecord',
    'AssetStore',
    'ClientHook',
    'install',
    'installed',
    'ModuleExecutionError',
    'ModuleLoader',
    'uninstall',
    'VfsConfig',
    'VirtualFileSystem',
    'VirtualMigrationSource',
    'VirtualModuleNotFoundError',
)
