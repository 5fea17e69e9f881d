import importlib.util
from pathlib import Path

import pytest

from bw_mysql.sql import AVAILABLE_PRIVS, USER_COLUMNS

BUNDLE_DIR = Path(__file__).resolve().parent.parent


class FakeMetadata(dict):
    """Node metadata supporting 'a/b/c' path lookups."""

    def get(self, path, default=None):
        value = self
        for key in path.split('/'):
            if not isinstance(value, dict) or key not in value:
                return default
            value = dict.get(value, key)
        return value


class FakeResult:
    def __init__(self, stdout):
        self.stdout = stdout.encode()


class FakeNode:
    def __init__(self, name='db1', os='debian', os_version=(11,), metadata=None, bundles=(), responses=None):
        self.name = name
        self.os = os
        self.os_version = os_version
        self.metadata = FakeMetadata(metadata or {})
        self.bundles = set(bundles)
        self.responses = responses or {}
        self.commands = []

    def has_bundle(self, name):
        return name in self.bundles

    def run(self, command):
        self.commands.append(command)
        for needle, output in self.responses.items():
            if needle in command:
                return FakeResult(output)
        return FakeResult('')


class FakeBundle:
    def __init__(self, node, name='mysql'):
        self.node = node
        self.name = name


class FakeVault:
    def password_for(self, identifier):
        return f"vault-{identifier}"


class FakeRepo:
    vault = FakeVault()


class DoNotRunAgain(Exception):
    pass


def metadata_reactor(func):
    return func


def load_item_module(name):
    spec = importlib.util.spec_from_file_location(f"bw_item_{name}", BUNDLE_DIR / 'items' / f'{name}.py')
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def run_bundle_file(filename, node, repo=None):
    namespace = {
        'node': node,
        'repo': repo or FakeRepo(),
        'metadata_reactor': metadata_reactor,
        'DoNotRunAgain': DoNotRunAgain,
    }
    path = BUNDLE_DIR / filename
    exec(compile(path.read_text(), str(path), 'exec'), namespace)
    return namespace


def make_item(cls, name, node, **attributes):
    item = cls.__new__(cls)
    item.name = name
    item.node = node
    item.bundle = FakeBundle(node)
    merged = dict(cls.ITEM_ATTRIBUTES)
    merged.update(attributes)
    item.attributes = item.patch_attributes(merged)
    return item


def user_row(host, user, password='*HASH', plugin='mysql_native_password', limits=(0, 0, 0, 0),
             ssl=('', '', '', ''), privileges=(), available_privs=AVAILABLE_PRIVS):
    header = '\t'.join(USER_COLUMNS + available_privs)
    columns = [host, user, password, plugin] + [str(limit) for limit in limits] + list(ssl)
    columns += ['Y' if priv in privileges else 'N' for priv in available_privs]
    return header + '\n' + '\t'.join(columns) + '\n'


@pytest.fixture
def node():
    return FakeNode()


@pytest.fixture
def bundle(node):
    return FakeBundle(node)


@pytest.fixture
def mysql_user_module():
    return load_item_module('mysql_user')


@pytest.fixture
def mysql_db_module():
    return load_item_module('mysql_db')
