"""Tunables shared by the normalizer, resolver, and module loader."""

from dataclasses import dataclass, field, replace
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


__all__ = ('VfsConfig',)


_ENV_PREFIX = 'UTSUSHI_'


@dataclass(frozen=True)
class VfsConfig:
    # Directory the application believes it runs from. Paths under it are
    # treated as if they were relative to the asset root.
    base_dir: 'None | str' = None
    build_segment: str = 'dist'
    namespace: str = 'migrations'
    script_suffix: str = '.py'
    # PEP 508 requirement strings for third-party packages migration scripts
    # may import even though they are not part of the fixed capability set.
    allowed_packages: 'tuple[str, ...]' = field(default_factory=tuple)
    excerpt_length: int = 500

    def __post_init__(self) -> None:
        namespace = self.namespace.strip('/')
        if not namespace or '/' in namespace:
            raise ValueError(
                f'namespace "{self.namespace}" must be exactly one path segment')
        object.__setattr__(self, 'namespace', namespace)

        if not self.build_segment or '/' in self.build_segment:
            raise ValueError(
                f'build segment "{self.build_segment}" must be one path segment')
        if self.script_suffix and not self.script_suffix.startswith('.'):
            raise ValueError(f'script suffix "{self.script_suffix}" lacks a dot')
        if self.excerpt_length < 0:
            raise ValueError('excerpt length must not be negative')

    @property
    def namespace_root(self) -> str:
        return f'/{self.namespace}'

    @classmethod
    def from_env(
        cls,
        environ: 'None | Mapping[str, str]' = None,
        **overrides: object,
    ) -> 'VfsConfig':
        """
        Create a configuration from `UTSUSHI_*` environment variables. Keyword
        arguments take precedence over the environment.
        """
        env = os.environ if environ is None else environ
        values: 'dict[str, object]' = {}

        base_dir = env.get(f'{_ENV_PREFIX}BASE_DIR')
        if base_dir:
            values['base_dir'] = base_dir
        build_segment = env.get(f'{_ENV_PREFIX}BUILD_SEGMENT')
        if build_segment:
            values['build_segment'] = build_segment
        namespace = env.get(f'{_ENV_PREFIX}NAMESPACE')
        if namespace:
            values['namespace'] = namespace
        allowed = env.get(f'{_ENV_PREFIX}ALLOW')
        if allowed:
            values['allowed_packages'] = tuple(
                entry.strip() for entry in allowed.split(',') if entry.strip())

        values.update(overrides)
        return cls(**values) # type: ignore[arg-type]

    def with_base_dir(self, base_dir: 'None | str') -> 'VfsConfig':
        return replace(self, base_dir=base_dir)
