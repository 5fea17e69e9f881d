import re
from shlex import quote

from bundlewrap.items import Item
from bundlewrap.exceptions import BundleError, RemoteException
from bundlewrap.utils.text import force_text, mark_for_translation as _
from bundlewrap.utils.ui import io
from passlib.apps import mysql_context

from bw_mysql.identifiers import parse, parse_and_normalize
from bw_mysql.sql import (
    AVAILABLE_PRIVS,
    RESOURCE_LIMITS,
    db_privileges_query,
    db_privileges_state,
    generate_delete_db_priv_sql,
    generate_delete_user_sql,
    generate_insert_db_priv_sql,
    generate_insert_user_sql,
    generate_update_db_priv_sql,
    generate_update_user_sql,
    parse_rows,
    privilege_tables,
    redact,
    user_query,
    user_state,
)

MYSQL_SCRIPT = "mysql --defaults-extra-file=/etc/mysql/debian.cnf"

LIMIT_ATTRIBUTES = [attr for attr, _column, _keyword in RESOURCE_LIMITS]
TLS_EXCLUSIVE_OPTIONS = ('NONE', 'SSL', 'X509')
TLS_OPTION = re.compile(r"^(CIPHER|ISSUER|SUBJECT)", re.IGNORECASE)
PLUGIN = re.compile(r"^\w+$")


def run_sql(node, sql):
    io.debug(f"{node.name}: running SQL: {redact(sql)}")
    try:
        return node.run("echo {sql} | {mysql}".format(sql=quote(sql + ";"), mysql=MYSQL_SCRIPT))
    except RemoteException:
        return None


def flush_right(node):
    return run_sql(node, "FLUSH PRIVILEGES")


def validate_tls_options(bundle, item_id, tls_options):
    if not isinstance(tls_options, list):
        tls_options = [tls_options, ]

    if any(option in TLS_EXCLUSIVE_OPTIONS for option in tls_options):
        if len(tls_options) > 1:
            raise BundleError(_(
                "the tls_options NONE, SSL and X509 cannot be used with other options "
                "on {item} in bundle '{bundle}', you may only pick one of them"
            ).format(
                bundle=bundle.name,
                item=item_id,
            ))
        return

    for option in tls_options:
        if not TLS_OPTION.match(option):
            raise BundleError(_(
                "invalid tls option {option} on {item} in bundle '{bundle}'"
            ).format(
                option=option,
                bundle=bundle.name,
                item=item_id,
            ))


class MysqlUser(Item):
    """
    A MySql account, named 'user@host'.
    """
    BUNDLE_ATTRIBUTE_NAME = "mysql_users"
    NEEDS_STATIC = [
        "pkg_apt:",
        "pkg_pacman:",
        "pkg_yum:",
        "pkg_zypper:",
    ]
    ITEM_ATTRIBUTES = {
        'delete': False,
        'password': None,
        'password_hash': '',
        'plugin': None,
        'privileges': [],
        'superuser': False,
        'db_priv': None,
        'max_user_connections': None,
        'max_connections_per_hour': None,
        'max_queries_per_hour': None,
        'max_updates_per_hour': None,
        'tls_options': None,
    }
    ITEM_TYPE_NAME = "mysql_user"
    REQUIRED_ATTRIBUTES = []

    def __repr__(self):
        return "<MySqlUser name:{}>".format(self.name)

    @property
    def account(self):
        return parse(self.name)

    def _privs(self):
        priv = {}
        for cur_priv in self.available_privs:
            priv[cur_priv] = "Y" if cur_priv in self.attributes['privileges'] else 'N'
        return priv

    def _db_privs(self, db):
        priv = {}
        for cur_priv in self.available_db_privs:
            priv[cur_priv] = "Y" if cur_priv in self.attributes['db_priv'][db] else 'N'
        return priv

    def _limits(self):
        return {attr: self.attributes[attr] for attr in LIMIT_ATTRIBUTES}

    def fix(self, status):
        account = self.account

        if status.must_be_deleted:
            run_sql(self.node, generate_delete_user_sql(account))
        elif status.must_be_created:
            run_sql(self.node, generate_insert_user_sql(
                account,
                self.attributes['password_hash'],
                self._privs(),
                self.sql_available_privs,
                plugin=self.attributes['plugin'],
                tls_options=self.attributes['tls_options'],
                limits=self._limits(),
            ))

            for db in self.attributes['db_priv']:
                run_sql(self.node, generate_insert_db_priv_sql(
                    account, db, self._db_privs(db), self.sql_available_db_privs,
                ))
        else:
            run_sql(self.node, generate_update_user_sql(
                account,
                self.attributes['password_hash'],
                self._privs(),
                self.sql_available_privs,
                plugin=self.attributes['plugin'],
                tls_options=self.attributes['tls_options'],
                limits=self._limits(),
            ))

            # revoke dbs which are no longer wanted
            for db in status.sdict.get('db_priv', []) if status.sdict else []:
                if db not in self.attributes['db_priv']:
                    run_sql(self.node, generate_delete_db_priv_sql(account, db))

            for db in self.attributes['db_priv']:
                run_sql(self.node, generate_update_db_priv_sql(
                    account, db, self._db_privs(db), self.sql_available_db_privs,
                ))

        flush_right(self.node)

    def cdict(self):
        if self.attributes['delete']:
            return None

        cdict = {
            'type': 'mysql_user',
            'password_hash': self.attributes['password_hash'],
            'plugin': self.attributes['plugin'],
            'privileges': sorted(self.attributes['privileges']),
            'db_priv': sorted(self.attributes['db_priv'].keys()),
        }

        for db in self.attributes['db_priv'].keys():
            cdict['db_{}_priv'.format(db)] = sorted(self.attributes['db_priv'][db])

        for attr in LIMIT_ATTRIBUTES:
            if self.attributes[attr] is not None:
                cdict[attr] = self.attributes[attr]

        if self.attributes['tls_options'] is not None:
            cdict['tls_options'] = sorted(self.attributes['tls_options'])

        return cdict

    def sdict(self):
        account = self.account
        res = run_sql(self.node, user_query(account, self.available_privs))
        if res is None:
            io.stderr(f"{self.node.name}: could not query mysql.user for {account}")
            return None

        user = user_state(parse_rows(res.stdout.decode()), self.available_privs)
        if not user:
            return None

        res = run_sql(self.node, db_privileges_query(account, self.available_db_privs))
        db_priv = db_privileges_state(parse_rows(res.stdout.decode()) if res else [], self.available_db_privs)

        sdict = {
            'type': 'mysql_user',
            'password_hash': user['password_hash'],
            'plugin': user['plugin'] if self.attributes['plugin'] else None,
            'privileges': sorted(user['privileges']),
            'db_priv': db_priv['db_priv'],
        }

        # the keys for sdict and cdict must be the same
        for db in self.attributes['db_priv'].keys():
            sdict['db_{}_priv'.format(db)] = sorted(db_priv.get('db_{}_priv'.format(db), []))

        for attr in LIMIT_ATTRIBUTES:
            if self.attributes[attr] is not None:
                sdict[attr] = user[attr]

        if self.attributes['tls_options'] is not None:
            sdict['tls_options'] = sorted(user['tls_options'])

        return sdict

    def display_on_create(self, cdict):
        cdict['password_hash'] = _("[new password hash redacted]")
        return cdict

    def display_dicts(self, cdict, sdict, keys):
        if 'password_hash' in keys:
            cdict['password_hash'] = _("[new password hash redacted]")
            sdict['password_hash'] = _("[old password hash redacted]")
        return (cdict, sdict, keys)

    # noinspection PyAttributeOutsideInit
    def patch_attributes(self, attributes):
        # import privileges into class
        (
            self.available_privs,
            self.sql_available_privs,
            self.available_db_privs,
            self.sql_available_db_privs,
        ) = privilege_tables(mariadb=self.node.os == 'debian' and self.node.os_version[0] >= 10)

        if attributes.get('password') not in (None, ''):
            attributes['password_hash'] = mysql_context.hash(
                force_text(attributes['password'])
            )

        if attributes.get('superuser', False):
            attributes['privileges'] = AVAILABLE_PRIVS.copy()

        if attributes.get('db_priv', None) is None:
            attributes['db_priv'] = {}

        for db, rights in attributes['db_priv'].items():
            if rights == 'all':
                attributes['db_priv'][db] = self.available_db_privs.copy()
            elif type(attributes['db_priv'][db]) is not list:
                attributes['db_priv'][db] = []

        if isinstance(attributes.get('tls_options'), str):
            attributes['tls_options'] = [attributes['tls_options'], ]

        return attributes

    def get_auto_deps(self, items):
        deps = []
        for item in items:
            if item.ITEM_TYPE_NAME == "mysql_db" and item.name in self.attributes.get('db_priv', {}).keys():
                if item.attributes.get('delete', False):
                    raise BundleError(_(
                        "{item1} (from bundle '{bundle1}') depends on item "
                        "{item2} (from bundle '{bundle2}') which is set to be deleted"
                    ).format(
                        item1=self.id,
                        bundle1=self.bundle.name,
                        item2=item.id,
                        bundle2=item.bundle.name,
                    ))
                else:
                    deps.append(item.id)
            if item.ITEM_TYPE_NAME == 'pkg_apt' and item.name in ('mysql-server', 'mariadb-server'):
                deps.append(item.id)
        return deps

    @classmethod
    def validate_name(cls, bundle, name):
        account = parse_and_normalize(name, version=bundle.node.metadata.get('mysql/version', None))

        if str(account) != name:
            raise BundleError(_(
                "mysql_user name {name} in bundle '{bundle}' is not normalized, use {normalized}"
            ).format(
                name=name,
                bundle=bundle.name,
                normalized=str(account),
            ))

    @classmethod
    def validate_attributes(cls, bundle, item_id, attributes):
        if not attributes.get('delete', False) and not attributes.get('plugin'):
            if attributes.get('password') is None and attributes.get('password_hash') is None:
                raise BundleError(_(
                    "expected either 'password' or 'password_hash' on {item} in bundle '{bundle}'"
                ).format(
                    bundle=bundle.name,
                    item=item_id,
                ))
        if attributes.get('password') is not None and attributes.get('password_hash') is not None:
            raise BundleError(_(
                "can't define both 'password' and 'password_hash' on {item} in bundle '{bundle}'"
            ).format(
                bundle=bundle.name,
                item=item_id,
            ))
        if not isinstance(attributes.get('delete', True), bool):
            raise BundleError(_(
                "expected boolean for 'delete' on {item} in bundle '{bundle}'"
            ).format(
                bundle=bundle.name,
                item=item_id,
            ))

        if not isinstance(attributes.get('db_priv', {}), (dict, type(None))):
            raise BundleError(_(
                "expected dict for 'db_priv' on {item} in bundle '{bundle}'"
            ).format(
                bundle=bundle.name,
                item=item_id,
            ))

        if attributes.get('plugin') is not None and not PLUGIN.match(attributes['plugin']):
            raise BundleError(_(
                "invalid plugin {plugin} on {item} in bundle '{bundle}'"
            ).format(
                plugin=attributes['plugin'],
                bundle=bundle.name,
                item=item_id,
            ))

        for attr in LIMIT_ATTRIBUTES:
            value = attributes.get(attr)
            if value is not None and (type(value) is not int or value < 0):
                raise BundleError(_(
                    "expected non-negative integer for '{attr}' on {item} in bundle '{bundle}'"
                ).format(
                    attr=attr,
                    bundle=bundle.name,
                    item=item_id,
                ))

        if attributes.get('tls_options') is not None:
            validate_tls_options(bundle, item_id, attributes['tls_options'])

        for priv in attributes.get('privileges', []):
            if priv not in AVAILABLE_PRIVS:
                raise BundleError(_(
                    "privilege {priv} is not valid on {item} in bundle '{bundle}'"
                ).format(
                    priv=priv,
                    bundle=bundle.name,
                    item=item_id,
                ))
