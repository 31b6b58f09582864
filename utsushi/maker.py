from contextlib import nullcontext
import json
import logging
from pathlib import Path
import sys
from typing import NamedTuple, TYPE_CHECKING

from .store import AssetRecord, AssetStore

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from contextlib import AbstractContextManager
    from typing import Protocol

    class Writable(Protocol):
        def write(self, data: str) -> int:
            ...


__all__ = ('AssetMapMaker', 'DEFAULT_DIRECTORIES')


logger = logging.getLogger(__name__)


DEFAULT_DIRECTORIES = (
    'config',
    'templates',
    'public',
    'assets',
    'data',
    'migrations',
)

_TEXT_EXTENSIONS = (
    '.cfg',
    '.csv',
    '.ini',
    '.json',
    '.md',
    '.py',
    '.sql',
    '.toml',
    '.txt',
    '.yaml',
    '.yml',

    '.css',
    '.html',
    '.js',
    '.svg',
    '.xml',
)

_SKIPPED_NAMES = (
    '.DS_Store',
    '__pycache__',
)


class CollectedFile(NamedTuple):
    """The local path and the asset store key for a collected file."""
    path: Path
    key: str


class AssetMapMaker:
    """
    Class to create asset maps, i.e., JSON objects that hold the content of an
    application's data files keyed by their paths relative to the application.
    """

    def __init__(
        self,
        app_dir: 'str | Path',
        directories: 'Sequence[str]' = DEFAULT_DIRECTORIES,
        extra_files: 'Sequence[str]' = (),
        *,
        text_extensions: 'tuple[str, ...]' = _TEXT_EXTENSIONS,
        output: 'None | str | Path' = None,
    ) -> None:
        self._app_dir = Path(app_dir)
        self._directories = directories
        self._extra_files = extra_files
        self._text_extensions = set(text_extensions)
        self._output = output

    def __repr__(self) -> str:
        return f'<utsushi-maker {self._app_dir}>'

    # ----------------------------------------------------------------------------------

    def run(self) -> AssetStore:
        store = self.make_store()

        # The nullcontext prevents closing of stdout when done.
        context: 'AbstractContextManager[Writable]'
        if self._output is None:
            context = nullcontext(sys.stdout)
        else:
            context = open(self._output, mode='w', encoding='utf8')

        with context as file:
            json.dump(store.to_asset_map(), file, indent=2, sort_keys=True)
            file.write('\n')

        logger.info('wrote %d assets from %s', len(store), self._app_dir)
        return store

    def make_store(self) -> AssetStore:
        records: 'dict[str, AssetRecord]' = {}
        for file in self.list_files():
            # Extra files may also sit in a collected directory.
            if file.key not in records:
                records[file.key] = self.make_record(file)
        return AssetStore(records.values())

    # ----------------------------------------------------------------------------------

    def list_files(self) -> 'Iterator[CollectedFile]':
        root = self._app_dir.absolute()
        if not root.is_dir():
            raise ValueError(f'application directory "{self._app_dir}" does not exist')

        for directory in self._directories:
            top = root / directory
            if not top.is_dir():
                logger.debug('skipping missing directory %s', top)
                continue

            pending = [top]
            while pending:
                item = pending.pop()
                if item.name in _SKIPPED_NAMES:
                    continue
                if item.is_dir():
                    pending.extend(sorted(item.iterdir(), reverse=True))
                elif item.is_file():
                    yield CollectedFile(item, self.to_key(root, item))

        for extra in self._extra_files:
            item = root / extra
            if not item.is_file():
                raise ValueError(f'extra file "{extra}" does not exist')
            yield CollectedFile(item, self.to_key(root, item))

    @staticmethod
    def to_key(root: Path, path: Path) -> str:
        return '/' + str(path.relative_to(root)).replace('\\', '/')

    def is_text(self, path: Path) -> bool:
        return path.suffix.lower() in self._text_extensions

    def make_record(self, file: CollectedFile) -> AssetRecord:
        content = file.path.read_bytes()
        if self.is_text(file.path):
            try:
                content.decode('utf8')
            except UnicodeDecodeError:
                logger.warning('%s is not UTF-8; storing it as binary', file.key)
            else:
                return AssetRecord(file.key, content, True)
        return AssetRecord(file.key, content, False)
