from pathlib import PurePosixPath

from .console import Console
from utsushi.config import VfsConfig
from utsushi.paths import canonical, Normalizer, split_name


def test_canonical(console: Console) -> None:
    for input, expected in (
        ('', '/'),
        ('/', '/'),
        ('config/app.json', '/config/app.json'),
        ('/config//app.json', '/config/app.json'),
        ('config\\app.json', '/config/app.json'),
        ('/config/app.json/', '/config/app.json'),
        ('/a/./b/../c', '/a/c'),
        ('/../../etc/passwd', '/etc/passwd'),
        (b'/public/logo.png', '/public/logo.png'),
        (PurePosixPath('/data/seed.csv'), '/data/seed.csv'),
    ):
        console.assert_eq(canonical(input), expected)


def test_split_name(console: Console) -> None:
    console.assert_eq(split_name('/migrations/001_a.py'), ('/migrations', '001_a.py'))
    console.assert_eq(split_name('/config'), ('/', 'config'))
    console.assert_eq(split_name('/'), ('/', ''))


def test_normalize_without_base(console: Console) -> None:
    normalize = Normalizer(VfsConfig())
    for input, expected in (
        ('/config/app.json', '/config/app.json'),
        ('config/app.json', '/config/app.json'),
        ('C:\\app\\dist\\config\\app.json', '/config/app.json'),
        ('c:/app/dist/config/app.json', '/config/app.json'),
        ('file:///srv/app/dist/templates/mail.html', '/templates/mail.html'),
        ('file:///C:/app/dist/public/logo.png', '/public/logo.png'),
        ('/srv/dist/app/dist/data/seed.csv', '/data/seed.csv'),
        ('dist/config/app.json', '/config/app.json'),
        ('/distribution/config/app.json', '/distribution/config/app.json'),
        ('/opt/app/config/', '/opt/app/config'),
        ('/opt/app/./config/../data', '/opt/app/data'),
        ('', '/'),
        (b'/srv/app/dist/config/app.json', '/config/app.json'),
    ):
        console.assert_eq(normalize(input), expected)


def test_normalize_never_fails(console: Console) -> None:
    normalize = Normalizer(VfsConfig())
    for input in (42, None, b'\xff\xfe/x', object(), '\x00', ':::', '//'):
        result = normalize(input)
        console.assert_op(isinstance, result, str)
        console.assert_true(result.startswith('/'))


def test_normalize_is_idempotent(console: Console) -> None:
    normalize = Normalizer(VfsConfig(base_dir='/app'))
    for input in (
        '/app/config/app.json',
        'C:\\app\\dist\\config\\app.json',
        'file:///app/migrations/001_a.py',
        'dist/x/dist/y',
        '/other/place/file.txt',
        '/app',
    ):
        once = normalize(input)
        console.assert_eq(normalize(once), once)


def test_normalize_with_base(console: Console) -> None:
    normalize = Normalizer(VfsConfig(base_dir='/app'))
    console.assert_eq(normalize.base_dir, '/app')
    for input, expected in (
        ('/app/config/app.json', '/config/app.json'),
        ('/app//config/app.json', '/config/app.json'),
        ('/app', '/'),
        ('/app/', '/'),
        ('/application/config/app.json', '/application/config/app.json'),
        ('/srv/config/app.json', '/srv/config/app.json'),
        ('/config/app.json', '/config/app.json'),
    ):
        console.assert_eq(normalize(input), expected)

    console.assert_true(normalize.names_base('/app/'))
    console.assert_true(normalize.names_base('file:///app'))
    console.assert_op(normalize.names_base, '/', expected=False)
    console.assert_op(normalize.names_base, '.', expected=False)


def test_normalize_with_windows_base(console: Console) -> None:
    normalize = Normalizer(VfsConfig(base_dir='C:\\srv\\app'))
    console.assert_eq(normalize.base_dir, '/srv/app')
    console.assert_eq(normalize('C:\\srv\\app\\data\\seed.csv'), '/data/seed.csv')
    console.assert_eq(normalize('/srv/app/data/seed.csv'), '/data/seed.csv')


def test_normalize_with_build_base(console: Console) -> None:
    normalize = Normalizer(VfsConfig(base_dir='/opt/dist/app'))
    console.assert_eq(normalize.base_dir, '/app')
    for input, expected in (
        ('/opt/dist/app/config/app.json', '/config/app.json'),
        ('/opt/dist/app', '/'),
        ('/opt/dist/app/config', '/config'),
        ('/app/config/app.json', '/config/app.json'),
    ):
        console.assert_eq(normalize(input), expected)

    console.assert_true(normalize.names_base('/opt/dist/app'))
    console.assert_true(normalize.names_base('C:\\opt\\dist\\app\\'))


def test_empty_base_means_no_base(console: Console) -> None:
    for base_dir in (None, '', '/', 'C:\\'):
        console.assert_none(Normalizer(VfsConfig(base_dir=base_dir)).base_dir)


def test_config_validation(console: Console) -> None:
    console.assert_eq(VfsConfig(namespace='/migrations/').namespace, 'migrations')
    console.assert_eq(VfsConfig(namespace='scripts').namespace_root, '/scripts')

    for kwargs in (
        {'namespace': 'db/migrations'},
        {'namespace': '/'},
        {'build_segment': ''},
        {'build_segment': 'out/dist'},
        {'script_suffix': 'py'},
        {'excerpt_length': -1},
    ):
        with console.assert_raises(ValueError):
            VfsConfig(**kwargs) # type: ignore[arg-type]


def test_config_from_env(console: Console) -> None:
    config = VfsConfig.from_env({
        'UTSUSHI_BASE_DIR': '/app',
        'UTSUSHI_BUILD_SEGMENT': 'build',
        'UTSUSHI_NAMESPACE': 'scripts',
        'UTSUSHI_ALLOW': 'requests >= 2, attrs,, ',
    })
    console.assert_eq(config.base_dir, '/app')
    console.assert_eq(config.build_segment, 'build')
    console.assert_eq(config.namespace, 'scripts')
    console.assert_eq(config.allowed_packages, ('requests >= 2', 'attrs'))

    config = VfsConfig.from_env({'UTSUSHI_NAMESPACE': 'scripts'}, namespace='jobs')
    console.assert_eq(config.namespace, 'jobs')
    console.assert_eq(VfsConfig.from_env({}), VfsConfig())
    console.assert_eq(VfsConfig().with_base_dir('/srv').base_dir, '/srv')
