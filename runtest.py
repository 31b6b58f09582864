#!.venv/bin/python

# mypy: disallow_any_expr = false

from dataclasses import dataclass
from importlib import import_module
import json
import logging
from pathlib import Path
import subprocess
import shutil
import sys

from test.console import Console


UNIT_TESTS = (
    'test.vfs_paths',
    'test.vfs_store',
    'test.vfs_resolver',
    'test.vfs_interceptor',
    'test.vfs_loader',
    'test.vfs_migrations',
    'test.vfs_maker',
)


# ======================================================================================


@dataclass
class Options:
    test_runner: str
    console: Console
    module_name: str = ''
    verbose: bool = False

    def make_verbose(self) -> None:
        self.verbose = True
        self.console.verbose = True

    def test_command(self) -> list[str]:
        command = [sys.executable, self.test_runner]
        if self.verbose:
            command.append('-v')
        return command


def utsushi(*args: str) -> subprocess.CompletedProcess[bytes]:
    return subprocess.run(
        [sys.executable, '-m', 'utsushi', '-q', *args],
        check=True,
        stdout=subprocess.PIPE,
    )


def run_tests(options: Options) -> int:
    console = options.console
    console.info("Getting started with Utsushi's test suite...")
    console.detail(f'Running "{sys.executable}"')
    console.detail(f' - Python {sys.version}')

    try:
        import utsushi
    except ImportError:
        console.error('Unable to import utsushi')
        sys.exit(1)

    console.detail(f'Testing utsushi {utsushi.__version__}')

    cwd = Path('.').absolute()
    tmpdir = cwd / 'tmp'

    shutil.rmtree(tmpdir, ignore_errors=True)
    tmpdir.mkdir()

    # ----------------------------------------------------------------------------------

    console.info('Running unit tests...')

    for module in UNIT_TESTS:
        console.detail(f'╭──── {module}')
        subprocess.run([*options.test_command(), 'run-test-module', module], check=True)
        console.detail('╰─╼')

    # ----------------------------------------------------------------------------------

    console.info('Making asset map for sample application...')

    app = tmpdir / 'app'
    logo = bytes(range(256)) * 4
    for path, content in (
        ('config/app.json', b'{"name": "sample"}'),
        ('public/logo.png', logo),
        ('templates/index.html', '<h1>Grüße</h1>'.encode('utf8')),
        ('migrations/001_init.py', b'def up(client):\n    return "init"\n'),
        ('migrations/002_seed.py', b'def up(client):\n    return "seed"\n'),
    ):
        file = app / path
        file.parent.mkdir(parents=True, exist_ok=True)
        file.write_bytes(content)

    asset_map = tmpdir / 'assets.json'
    utsushi('make', '-o', str(asset_map), str(app))
    keys = sorted(json.loads(asset_map.read_text(encoding='utf8')))
    if keys != [
        '/config/app.json',
        '/migrations/001_init.py',
        '/migrations/002_seed.py',
        '/public/logo.png',
        '/templates/index.html',
    ]:
        console.error(f'Asset map has unexpected keys {keys}')
        sys.exit(1)
    console.detail(f'Created tmp/assets.json with {len(keys)} assets')

    # ----------------------------------------------------------------------------------

    console.info('Inspecting asset map through command line...')

    err_count = 0
    for args, expected in (
        (('resolve', str(asset_map), 'C:\\srv\\dist\\config\\app.json'),
            b'/config/app.json (exact match)\n'),
        (('resolve', str(asset_map), '/opt/sample/migrations/002_seed.py'),
            b'/migrations/002_seed.py (suffix match)\n'),
        (('--base-dir', '/srv/sample', 'ls', str(asset_map), '/srv/sample'),
            b'config/\nmigrations/\npublic/\ntemplates/\n'),
        (('ls', str(asset_map), '/migrations'),
            b'001_init.py\n002_seed.py\n'),
        (('cat', str(asset_map), '/templates/index.html'),
            '<h1>Grüße</h1>'.encode('utf8')),
    ):
        actual = utsushi(*args).stdout
        if actual == expected:
            console.detail(f'utsushi {args[0]} produced expected output')
        else:
            console.detail(f'utsushi {" ".join(args)} produced {actual!r}')
            err_count += 1

    inspection = utsushi('inspect', str(asset_map)).stdout.decode('utf8')
    if 'binary' not in inspection or '/public/logo.png' not in inspection:
        console.detail(f'utsushi inspect produced {inspection!r}')
        err_count += 1

    completion = subprocess.run(
        [sys.executable, '-m', 'utsushi', 'resolve', str(asset_map), '/nowhere.txt'],
        stdout=subprocess.PIPE,
    )
    if completion.returncode != 1 or not completion.stdout.startswith(b'Error:'):
        console.detail('utsushi resolve did not fail for unknown path')
        err_count += 1

    if err_count > 0:
        console.error('Command line tool is broken!')
        raise SystemExit(1)

    # ----------------------------------------------------------------------------------

    console.info('Comparing bundled binary file to original...')
    canned_logo = utsushi('cat', str(asset_map), 'file:///srv/dist/public/logo.png').stdout
    if canned_logo != logo:
        console.error('Bundled image differs from original!')
        raise SystemExit(1)
    console.detail('Bundled image is the same as original')

    # ----------------------------------------------------------------------------------

    console.success('W00t! All tests passed!')

    shutil.rmtree(tmpdir)
    return 0

# ======================================================================================

def configure_logging(verbose: bool) -> None:
    logger = logging.getLogger('utsushi')
    logger.propagate = False
    if verbose:
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter('    %(levelname)s %(message)s'))
        logger.setLevel(logging.DEBUG)
    else:
        # Expected failures log errors; keep them out of the test report.
        handler = logging.NullHandler()
    logger.addHandler(handler)


def run_module_test(options: Options) -> int:
    console = options.console
    configure_logging(options.verbose)
    module = import_module(options.module_name)

    errors = 0
    for key in dir(module):
        if not key.startswith('test_'):
            continue
        value = getattr(module, key)
        if not callable(value):
            continue

        console.detail(f'├─ {value.__name__}')
        with console.new_prefix('│   '):
            try:
                value(options.console)
            except Exception as x:
                console.exception(x)
                errors += 1

    return bool(errors + console.failed_assertions)

# --------------------------------------------------------------------------------------

if __name__ == '__main__':
    console = Console(sys.stdout)
    try:
        options = Options(sys.argv[0], console)

        fn = run_tests
        for arg in sys.argv[1:]:
            if arg == '-v':
                options.make_verbose()
            elif arg == 'run-test-module':
                fn = run_module_test
            elif fn == run_module_test and options.module_name == '':
                options.module_name = arg
            else:
                raise SystemExit(f'unrecognized command line argument "{arg}"')

        if fn == run_module_test and options.module_name == '':
            raise SystemExit('can\'t "run-test-module" without module name')

        sys.exit(fn(options))

    except SystemExit as x:
        code = 0
        if isinstance(x.code, str):
            console.error(x.code)
            code = 1
        elif isinstance(x.code, int):
            code = x.code
        sys.exit(code)

    except subprocess.CalledProcessError as x:
        cmd = list(x.cmd)
        if cmd[0] == sys.executable:
            cmd[0] = 'python'
        console.info(
            f'command "{" ".join(cmd)}" failed with exit status {x.returncode}')
        sys.exit(1)

    except Exception as x:
        console.exception(x)
        sys.exit(1)
