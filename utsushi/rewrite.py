"""
Translation of import statements into calls of a dependency resolver.

Scripts loaded from the asset store were written as ordinary modules, yet they
execute without a package, a module spec, or a path on disk. Before execution,
their import statements therefore are rewritten into calls of the function
bound to `__require__` in the script's scope:

    import a                    a = __require__('a')
    import a.b                  __require__('a.b'); a = __require__('a')
    import a.b as c             c = __require__('a.b')
    from m import x, y as z     x = __require__('m', 'x'); z = __require__('m', 'y')
    from .m import x            x = __require__('.m', 'x')
    from . import m             m = __require__('.', 'm')
    from __future__ import f    (unchanged)

Imports nested inside functions, classes, and compound statements are rewritten
just the same. There are exactly two unsupported forms, which are rejected with
an `UnsupportedSyntaxError`: star imports, since the names they bind are not
known before execution, and relative imports that climb above the namespace
root.
"""

import ast
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import CodeType


__all__ = ('compile_script', 'REQUIRE', 'rewrite', 'UnsupportedSyntaxError')


REQUIRE = '__require__'


class UnsupportedSyntaxError(SyntaxError):
    """An import statement outside the supported subset."""


def _call(*args: str) -> ast.Call:
    return ast.Call(
        func=ast.Name(id=REQUIRE, ctx=ast.Load()),
        args=[ast.Constant(value=arg) for arg in args],
        keywords=[],
    )


def _assign(name: str, value: ast.expr) -> ast.Assign:
    return ast.Assign(targets=[ast.Name(id=name, ctx=ast.Store())], value=value)


class ImportRewriter(ast.NodeTransformer):

    def __init__(self, source: str, filename: str, depth: int) -> None:
        self._lines = source.splitlines()
        self._filename = filename
        self._depth = depth

    def _unsupported(self, node: ast.stmt, message: str) -> UnsupportedSyntaxError:
        lineno = node.lineno
        text = self._lines[lineno - 1] if 0 < lineno <= len(self._lines) else None
        return UnsupportedSyntaxError(
            message, (self._filename, lineno, node.col_offset + 1, text))

    def visit_Import(self, node: ast.Import) -> 'list[ast.stmt]':
        statements: 'list[ast.stmt]' = []
        for alias in node.names:
            if alias.asname is not None:
                statements.append(_assign(alias.asname, _call(alias.name)))
            elif '.' in alias.name:
                top = alias.name.partition('.')[0]
                statements.append(ast.Expr(value=_call(alias.name)))
                statements.append(_assign(top, _call(top)))
            else:
                statements.append(_assign(alias.name, _call(alias.name)))
        return [ast.copy_location(statement, node) for statement in statements]

    def visit_ImportFrom(self, node: ast.ImportFrom) -> 'ast.stmt | list[ast.stmt]':
        if node.module == '__future__' and node.level == 0:
            return node
        if any(alias.name == '*' for alias in node.names):
            raise self._unsupported(node, 'star imports are not supported')
        if node.level > self._depth:
            raise self._unsupported(
                node, 'relative import reaches beyond the namespace root')

        module = '.' * node.level + (node.module or '')
        return [
            ast.copy_location(
                _assign(alias.asname or alias.name, _call(module, alias.name)), node)
            for alias in node.names
        ]


def rewrite(source: str, filename: str, depth: int = 1) -> ast.Module:
    """
    Parse and rewrite the script. The depth is the number of directory levels
    between the script and the namespace root, with 1 meaning the script sits
    directly inside the namespace.
    """
    tree = ast.parse(source, filename=filename, mode='exec')
    tree = ImportRewriter(source, filename, depth).visit(tree)
    return ast.fix_missing_locations(tree)


def compile_script(source: str, filename: str, depth: int = 1) -> 'CodeType':
    return compile(rewrite(source, filename, depth), filename, 'exec', dont_inherit=True)
