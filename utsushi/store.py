import base64
import binascii
from collections.abc import Mapping
import json
from pathlib import Path
from types import MappingProxyType
from typing import cast, NamedTuple, TYPE_CHECKING

from .paths import canonical

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from typing import TypeAlias

    AssetMapType: TypeAlias = Mapping[str, Mapping[str, str]]


__all__ = ('AssetRecord', 'AssetStore', 'decode_entry')


class AssetRecord(NamedTuple):
    """A bundled file. Text records hold UTF-8 encoded content."""
    path: str
    content: bytes
    is_text: bool

    def text(self, encoding: str = 'utf8', errors: str = 'strict') -> str:
        return self.content.decode(encoding, errors)

    def __repr__(self) -> str:
        kind = 'text' if self.is_text else 'binary'
        return f'<asset {self.path} {kind} {len(self.content)} bytes>'


def decode_entry(key: str, entry: 'Mapping[str, str]') -> 'tuple[bytes, bool]':
    try:
        content = entry['content']
        encoding = entry.get('encoding', 'utf8')
    except (KeyError, AttributeError, TypeError):
        raise ValueError(f'asset map entry "{key}" lacks content')
    if not isinstance(content, str):
        raise ValueError(f'asset map entry "{key}" has non-string content')

    if encoding == 'utf8':
        return content.encode('utf8'), True
    elif encoding == 'base64':
        try:
            return base64.b64decode(content, validate=True), False
        except binascii.Error as x:
            raise ValueError(f'asset map entry "{key}" is malformed ({x})') from x
    else:
        raise ValueError(f'invalid encoding "{encoding}" for asset map entry "{key}"')


class AssetStore(Mapping[str, AssetRecord]):
    """
    The flat, read-only mapping from canonical paths to bundled files. It is
    created once, before the application runs, and never changes afterwards.
    """

    @classmethod
    def from_asset_map(cls, asset_map: 'AssetMapType') -> 'AssetStore':
        records = []
        for key, entry in asset_map.items():
            content, is_text = decode_entry(key, entry)
            records.append(AssetRecord(canonical(key), content, is_text))
        return cls(records)

    @classmethod
    def from_json(cls, data: 'str | bytes') -> 'AssetStore':
        asset_map = json.loads(data)
        if not isinstance(asset_map, dict):
            raise ValueError('asset map is not a JSON object')
        return cls.from_asset_map(cast('AssetMapType', asset_map))

    @classmethod
    def load(cls, path: 'str | Path') -> 'AssetStore':
        with open(path, mode='rb') as file:
            return cls.from_json(file.read())

    @classmethod
    def from_files(cls, files: 'Mapping[str, str | bytes]') -> 'AssetStore':
        """Create a store from in-memory content, with `str` meaning text."""
        return cls(
            AssetRecord(canonical(key), value.encode('utf8'), True)
            if isinstance(value, str)
            else AssetRecord(canonical(key), bytes(value), False)
            for key, value in files.items()
        )

    def __init__(self, records: 'Iterable[AssetRecord]') -> None:
        entries: 'dict[str, AssetRecord]' = {}
        for record in records:
            if record.path != canonical(record.path):
                raise ValueError(f'asset path "{record.path}" is not canonical')
            if record.path == '/':
                raise ValueError('asset path must name a file, not the root')
            if record.path in entries:
                raise ValueError(f'duplicate asset path "{record.path}"')
            entries[record.path] = record
        self._entries = MappingProxyType(entries)

    def __repr__(self) -> str:
        return f'<utsushi-store {len(self._entries)} assets>'

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __getitem__(self, key: str) -> AssetRecord:
        return self._entries[key]

    def __iter__(self) -> 'Iterator[str]':
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def under(self, prefix: str) -> 'Iterator[str]':
        """Iterate over all keys starting with the given directory prefix."""
        if not prefix.endswith('/'):
            prefix += '/'
        for key in self._entries:
            if key.startswith(prefix):
                yield key

    def to_asset_map(self) -> 'dict[str, dict[str, str]]':
        asset_map: 'dict[str, dict[str, str]]' = {}
        for key in sorted(self._entries):
            record = self._entries[key]
            if record.is_text:
                asset_map[key] = {'content': record.text(), 'encoding': 'utf8'}
            else:
                asset_map[key] = {
                    'content': base64.b64encode(record.content).decode('ascii'),
                    'encoding': 'base64',
                }
        return asset_map
