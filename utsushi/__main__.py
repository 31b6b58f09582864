from argparse import ArgumentParser, HelpFormatter, RawTextHelpFormatter
from dataclasses import dataclass, field
import logging
import os
import sys
from textwrap import dedent
import traceback

from .config import VfsConfig
from .interceptor import VirtualFileSystem
from .maker import AssetMapMaker, DEFAULT_DIRECTORIES
from .store import AssetStore


def parser() -> ArgumentParser:
    try:
        width = min(os.get_terminal_size()[0], 70)
    except OSError:
        width = 70

    def width_limited_formatter(prog: str) -> HelpFormatter:
        return RawTextHelpFormatter(prog, width=width)

    parser = ArgumentParser('utsushi',
        description=dedent("""
            Make the data files of a packaged Python application appear at
            their original paths.

            Utsushi bundles an application's configuration, templates, static
            assets, and migration scripts into a JSON asset map. At runtime, a
            virtual filesystem answers reads, existence checks, metadata
            queries, and directory listings for these files from the asset
            map and passes all other requests through to the real filesystem.
            Migration scripts load straight from the asset map, too.

            Use the `make` command to create an asset map from an application
            directory. Use `inspect`, `resolve`, `ls`, and `cat` to see what an
            existing asset map holds and how the virtual filesystem matches
            paths against it.
        """),
        formatter_class=width_limited_formatter)
    parser.add_argument(
        '-v', '--verbose',
        action='count', default=0,
        help='enable verbose output')
    parser.add_argument(
        '-q', '--quiet',
        action='count', default=0,
        help='only report warnings; twice for errors only')
    parser.add_argument(
        '--base-dir',
        metavar='DIR',
        help='treat paths under this directory as relative\nto the asset root')
    parser.add_argument(
        '--namespace',
        metavar='NAME',
        help='tolerated namespace for migration scripts')

    commands = parser.add_subparsers(dest='command', metavar='COMMAND', required=True)

    make = commands.add_parser(
        'make', help='create an asset map from an application directory',
        formatter_class=width_limited_formatter)
    make.add_argument(
        '-d', '--directory',
        dest='directories', action='append', metavar='DIR',
        help='collect this subdirectory; may be repeated\n(default: '
        + ', '.join(DEFAULT_DIRECTORIES) + ')')
    make.add_argument(
        '-e', '--extra',
        dest='extra_files', action='append', metavar='FILE',
        help='also collect this file; may be repeated')
    make.add_argument(
        '-o', '--output',
        metavar='FILENAME',
        help='write asset map to this file')
    make.add_argument('app_dir', metavar='APPDIR', help='application directory')

    inspect = commands.add_parser('inspect', help='list the assets in an asset map')
    inspect.add_argument('map', metavar='MAP', help='asset map file')

    for name, summary in (
        ('resolve', 'show the asset a path resolves to'),
        ('ls', 'list a virtual directory'),
        ('cat', 'write a virtual file to stdout'),
    ):
        command = commands.add_parser(name, help=summary)
        command.add_argument('map', metavar='MAP', help='asset map file')
        command.add_argument('path', metavar='PATH', help='path to look up')

    return parser


@dataclass
class ToolOptions:
    verbose: int = 0
    quiet: int = 0
    base_dir: 'None | str' = None
    namespace: 'None | str' = None
    command: str = ''
    app_dir: str = ''
    directories: 'None | list[str]' = None
    extra_files: 'list[str]' = field(default_factory=list)
    output: 'None | str' = None
    map: str = ''
    path: str = ''


def configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    level = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger = logging.getLogger('utsushi')
    logger.setLevel(level)
    logger.propagate = False

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter('%(message)s'))
    logger.handlers[:] = [handler]
    return logger


def make_config(options: ToolOptions) -> VfsConfig:
    overrides: 'dict[str, object]' = {}
    if options.namespace is not None:
        overrides['namespace'] = options.namespace
    config = VfsConfig.from_env(**overrides)
    if options.base_dir is not None:
        config = config.with_base_dir(options.base_dir)
    return config


# --------------------------------------------------------------------------------------


def make(options: ToolOptions) -> None:
    AssetMapMaker(
        options.app_dir,
        directories=options.directories or DEFAULT_DIRECTORIES,
        extra_files=options.extra_files or (),
        output=options.output,
    ).run()


def inspect(options: ToolOptions) -> None:
    vfs = VirtualFileSystem(AssetStore.load(options.map), make_config(options))
    for key in sorted(vfs.store):
        record = vfs.store[key]
        kind = 'text' if record.is_text else 'binary'
        print(f'{kind:<6} {len(record.content):>9_d}  {key}')

    ambiguous = vfs.resolver.ambiguous_names
    if ambiguous:
        print(f'ambiguous in {vfs.config.namespace_root}: {", ".join(sorted(ambiguous))}')


def resolve(options: ToolOptions) -> None:
    vfs = VirtualFileSystem(AssetStore.load(options.map), make_config(options))
    resolution = vfs.resolver.explain(options.path)
    if resolution is None:
        raise ValueError(f'path "{options.path}" is not virtualized')
    print(f'{resolution.record.path} ({resolution.strategy} match)')


def ls(options: ToolOptions) -> None:
    vfs = VirtualFileSystem(AssetStore.load(options.map), make_config(options))
    entries = vfs.entries(options.path)
    if entries is None:
        raise ValueError(f'directory "{options.path}" is not virtualized')
    for name in sorted(entries):
        print(f'{name}/' if entries[name] else name)


def cat(options: ToolOptions) -> None:
    vfs = VirtualFileSystem(AssetStore.load(options.map), make_config(options))
    record = vfs.lookup(options.path)
    if record is None:
        raise ValueError(f'file "{options.path}" is not virtualized')
    sys.stdout.buffer.write(record.content)
    sys.stdout.buffer.flush()


COMMANDS = {
    'make': make,
    'inspect': inspect,
    'resolve': resolve,
    'ls': ls,
    'cat': cat,
}


def main() -> None:
    options = parser().parse_args(namespace=ToolOptions())
    configure_logging(verbose=options.verbose, quiet=options.quiet)

    try:
        COMMANDS[options.command](options)
    except Exception as x:
        if options.verbose:
            traceback.print_exception(x)
        else:
            print(f'Error: {x}')
        sys.exit(1)


if __name__ == '__main__':
    main()
