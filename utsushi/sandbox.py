"""
Execution of a rewritten script in a scope of its own.

The scope starts out with nothing but the script's name, the dependency
resolver, explicitly granted extras, and builtins whose `__import__` goes
through the dependency resolver as well. After the script ran to completion,
its exports are copied into the exports object: the names listed in `__all__`
if the script defines it and all public names otherwise.
"""

import builtins
from typing import Callable, TYPE_CHECKING

from .rewrite import REQUIRE

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from types import CodeType, ModuleType
    from typing import TypeAlias

    RequireType: TypeAlias = Callable[..., object]


__all__ = ('run',)


def _make_builtins(require: 'RequireType') -> 'dict[str, object]':
    def guarded_import(
        name: str,
        globals: 'None | Mapping[str, object]' = None,
        locals: 'None | Mapping[str, object]' = None,
        fromlist: 'Sequence[str]' = (),
        level: int = 0,
    ) -> object:
        target = '.' * level + name
        module = require(target)
        if fromlist or level > 0 or '.' not in name:
            return module
        # "import a.b" binds the top-level package
        return require(name.partition('.')[0])

    scope_builtins = dict(builtins.__dict__)
    scope_builtins['__import__'] = guarded_import
    return scope_builtins


def run(
    code: 'CodeType',
    exports: 'ModuleType',
    require: 'RequireType',
    display_name: str,
    *,
    filename: 'None | str' = None,
    extras: 'None | Mapping[str, object]' = None,
) -> 'dict[str, object]':
    scope: 'dict[str, object]' = {
        '__name__': display_name,
        '__file__': filename or display_name,
        '__builtins__': _make_builtins(require),
        REQUIRE: require,
        'require': require,
    }
    if extras:
        scope.update(extras)
    injected = frozenset(scope)

    exec(code, scope)

    names = scope.get('__all__')
    if names is None:
        names = [
            name for name in scope
            if not name.startswith('_') and name not in injected
        ]
    for name in names: # type: ignore[attr-defined]
        setattr(exports, name, scope[name])
    return scope
