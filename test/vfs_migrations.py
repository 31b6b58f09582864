import importlib
import os
import sys
import tempfile
from types import ModuleType

from .console import Console
from utsushi import ModuleLoader
from utsushi.migrations import ClientHook, VirtualMigrationSource
from utsushi.store import AssetStore


def make_source() -> VirtualMigrationSource:
    store = AssetStore.from_files({
        '/migrations/001_create_users.py': """\
def up(client):
    client.append('create users')

def down(client):
    client.append('drop users')
""",
        '/migrations/002_add_email.py': """\
from ._columns import EMAIL

def up(client):
    client.append(f'add {EMAIL}')

def down(client):
    client.append(f'remove {EMAIL}')
""",
        '/migrations/_columns.py': "EMAIL = 'email'\n",
        '/migrations/archive/000_legacy.py': '',
        '/migrations/README.md': '# Migrations\n',
        '/config/app.json': '{}',
    })
    return VirtualMigrationSource(ModuleLoader(store))


def create(config: object) -> 'dict[str, object]':
    return {'config': config}


def test_migration_source(console: Console) -> None:
    source = make_source()
    console.assert_eq(source.get_migrations(), ['001_create_users.py', '002_add_email.py'])
    console.assert_eq(source.get_migration_name('002_add_email.py'), '002_add_email.py')

    # Drive the source the way a migration client does.
    log: 'list[str]' = []
    for migration in source.get_migrations():
        source.get_migration(source.get_migration_name(migration)).up(log)
    for migration in reversed(source.get_migrations()):
        source.get_migration(migration).down(log)

    console.assert_eq(log, [
        'create users', 'add email', 'remove email', 'drop users',
    ])


def test_inject(console: Console) -> None:
    source = make_source()
    hook = ClientHook('fake_migration_client', 'create', source)

    config = {
        'client': 'sqlite3',
        'migrations': {'directory': './migrations', 'tableName': 'schema_history'},
    }
    injected = hook.inject(config)
    console.assert_eq(injected, {
        'client': 'sqlite3',
        'migrations': {'tableName': 'schema_history', 'migration_source': source},
    })
    # The caller's configuration is left alone.
    console.assert_eq(config['migrations'], {
        'directory': './migrations', 'tableName': 'schema_history'})

    for unchanged in (
        {'client': 'sqlite3'},
        {'migrations': {'tableName': 'schema_history'}},
        {'migrations': {'directory': './migrations', 'migration_source': 'custom'}},
        {'migrations': 'not a mapping'},
        'postgres://localhost/crm',
        None,
    ):
        console.assert_op('is_', hook.inject(unchanged), unchanged)


def test_hook_imported_module(console: Console) -> None:
    source = make_source()
    module = ModuleType('fake_migration_client')
    module.create = create # type: ignore[attr-defined]
    sys.modules['fake_migration_client'] = module

    hook = ClientHook('fake_migration_client', 'create', source)
    try:
        console.assert_op('is_', hook.install(), hook)
        hook.install()
        wrapped = module.create # type: ignore[attr-defined]
        console.assert_op('is_', getattr(wrapped, '__utsushi_wrapped__', None), create)
        console.assert_eq(wrapped.__name__, 'create')

        client = wrapped({'migrations': {'directory': 'db'}})
        console.assert_eq(client, {'config': {'migrations': {'migration_source': source}}})
        client = wrapped(config={'migrations': {'directory': 'db'}})
        console.assert_eq(client, {'config': {'migrations': {'migration_source': source}}})
        console.assert_eq(wrapped({'client': 'pg'}), {'config': {'client': 'pg'}})
    finally:
        hook.uninstall()
        del sys.modules['fake_migration_client']

    console.assert_op('is_', module.create, create) # type: ignore[attr-defined]
    console.assert_op('contains', sys.meta_path, hook, expected=False)


def test_hook_lazy_import(console: Console) -> None:
    source = make_source()
    hook = ClientHook('fake_lazy_client', 'create', source)

    with tempfile.TemporaryDirectory() as tmp:
        with open(os.path.join(tmp, 'fake_lazy_client.py'), mode='w', encoding='utf8') as file:
            file.write('def create(config):\n    return {"config": config}\n')

        sys.path.insert(0, tmp)
        importlib.invalidate_caches()
        try:
            hook.install()
            console.assert_op('contains', sys.meta_path, hook)

            module = importlib.import_module('fake_lazy_client')
            client = module.create({'migrations': {'directory': './migrations'}})
            console.assert_eq(client, {'config': {'migrations': {'migration_source': source}}})
            console.assert_op('is_', hook.source, source)
        finally:
            hook.uninstall()
            sys.path.remove(tmp)
            sys.modules.pop('fake_lazy_client', None)

    console.assert_op('contains', sys.meta_path, hook, expected=False)
