from .console import Console
from utsushi.config import VfsConfig
from utsushi.listing import DirectorySynthesizer
from utsushi.resolver import Resolver
from utsushi.store import AssetStore


def make_store() -> AssetStore:
    return AssetStore.from_files({
        '/config/app.json': '{"name": "crm"}',
        '/config/env/prod.json': '{}',
        '/templates/mail/welcome.html': '<p>Hi</p>',
        '/public/index.html': '<html></html>',
        '/migrations/001_init.py': 'VERSION = 1\n',
        '/migrations/003_add_index.py': 'VERSION = 3\n',
        '/migrations/archive/001_init.py': 'VERSION = 0\n',
    })


def key_of(resolver: Resolver, path: object) -> 'None | tuple[str, str]':
    resolution = resolver.explain(path)
    if resolution is None:
        return None
    return resolution.record.path, resolution.strategy


def test_resolution_ladder(console: Console) -> None:
    resolver = Resolver(make_store(), VfsConfig())
    for path, expected in (
        ('/config/app.json', ('/config/app.json', 'exact')),
        ('C:\\srv\\crm\\dist\\config\\app.json', ('/config/app.json', 'exact')),
        ('file:///srv/crm/dist/public/index.html', ('/public/index.html', 'exact')),
        ('/srv/crm/config/app.json', ('/config/app.json', 'suffix')),
        ('mail/welcome.html', ('/templates/mail/welcome.html', 'suffix')),
        ('/srv/crm/migrations/003_add_index.py', ('/migrations/003_add_index.py', 'suffix')),
        ('/opt/migrations/v2/003_add_index.py', ('/migrations/003_add_index.py', 'filename')),
        ('/migrations/999_missing.py', None),
        ('/opt/scripts/003_add_index.py', None),
        ('/', None),
        ('', None),
        ('/config', None),
    ):
        console.assert_eq(key_of(resolver, path), expected)


def test_resolve_with_base_dir(console: Console) -> None:
    resolver = Resolver(make_store(), VfsConfig(base_dir='/app'))
    console.assert_eq(key_of(resolver, '/app/config/app.json'), ('/config/app.json', 'exact'))
    console.assert_eq(resolver.resolve('/app/config/app.json'), make_store()['/config/app.json'])
    console.assert_none(resolver.resolve('/app'))


def test_ambiguous_filenames(console: Console) -> None:
    resolver = Resolver(make_store(), VfsConfig())
    console.assert_eq(resolver.ambiguous_names, frozenset({'001_init.py'}))

    # Ambiguous names still resolve exactly and by suffix, just not by filename.
    console.assert_eq(
        key_of(resolver, '/migrations/001_init.py'), ('/migrations/001_init.py', 'exact'))
    console.assert_eq(
        key_of(resolver, '/x/migrations/archive/001_init.py'),
        ('/migrations/archive/001_init.py', 'suffix'),
    )
    console.assert_none(resolver.resolve('/opt/migrations/v2/001_init.py'))


def test_suffix_determinism(console: Console) -> None:
    store = AssetStore.from_files({
        '/a.txt': 'short',
        '/x/a.txt': 'long',
        '/q/r/b/c.txt': 'deep',
        '/z/b/c.txt': 'z',
        '/a/b/c.txt': 'a',
    })
    resolver = Resolver(store, VfsConfig())

    # The longest key that the path ends with is the most specific.
    console.assert_eq(key_of(resolver, '/y/x/a.txt'), ('/x/a.txt', 'suffix'))
    console.assert_eq(key_of(resolver, '/y/a.txt'), ('/a.txt', 'suffix'))
    # Of the keys that end with the path, the shortest and then first one wins.
    console.assert_eq(key_of(resolver, 'b/c.txt'), ('/a/b/c.txt', 'suffix'))
    console.assert_eq(key_of(resolver, 'r/b/c.txt'), ('/q/r/b/c.txt', 'suffix'))


def test_other_namespace(console: Console) -> None:
    store = AssetStore.from_files({
        '/scripts/010_seed.py': '',
        '/migrations/011_other.py': '',
    })
    resolver = Resolver(store, VfsConfig(namespace='scripts'))
    console.assert_eq(
        key_of(resolver, '/deploy/scripts/v1/010_seed.py'), ('/scripts/010_seed.py', 'filename'))
    console.assert_none(resolver.resolve('/deploy/migrations/v1/011_other.py'))


# --------------------------------------------------------------------------------------


def test_list_children(console: Console) -> None:
    listing = DirectorySynthesizer(make_store(), VfsConfig())
    for path, expected in (
        ('/migrations', {'001_init.py', '003_add_index.py', 'archive'}),
        ('/migrations/', {'001_init.py', '003_add_index.py', 'archive'}),
        ('/srv/crm/migrations', {'001_init.py', '003_add_index.py', 'archive'}),
        ('C:\\crm\\dist\\config', {'app.json', 'env'}),
        ('/config/env', {'prod.json'}),
        ('/templates', {'mail'}),
        ('/nothing', None),
        ('/config/app.json', None),
        ('/xmigrations', None),
        ('/', None),
        ('.', None),
    ):
        console.assert_eq(listing.list_children(path), expected)


def test_list_entries(console: Console) -> None:
    listing = DirectorySynthesizer(make_store(), VfsConfig())
    console.assert_eq(listing.list_entries('/config'), {'app.json': False, 'env': True})
    console.assert_eq(
        listing.list_entries('/migrations'),
        {'001_init.py': False, '003_add_index.py': False, 'archive': True},
    )
    console.assert_true(listing.is_directory('/config/env'))
    console.assert_op(listing.is_directory, '/config/app.json', expected=False)


def test_list_base_dir(console: Console) -> None:
    listing = DirectorySynthesizer(make_store(), VfsConfig(base_dir='/app'))
    console.assert_eq(
        listing.list_children('/app'),
        {'config', 'migrations', 'public', 'templates'},
    )
    console.assert_eq(listing.list_children('/app/config'), {'app.json', 'env'})
    console.assert_none(listing.list_children('/'))
    console.assert_none(listing.list_children('/srv'))

    # A base inside the build output still names the asset root.
    listing = DirectorySynthesizer(make_store(), VfsConfig(base_dir='/opt/dist/app'))
    console.assert_eq(
        listing.list_children('/opt/dist/app'),
        {'config', 'migrations', 'public', 'templates'},
    )
    console.assert_eq(listing.list_children('/opt/dist/app/config'), {'app.json', 'env'})
