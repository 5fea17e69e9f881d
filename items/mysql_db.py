import re
from shlex import quote

from bundlewrap.items import Item
from bundlewrap.exceptions import BundleError, RemoteException
from bundlewrap.utils.text import mark_for_translation as _
from bundlewrap.utils.ui import io

from bw_mysql.sql import (
    database_query,
    database_state,
    generate_alter_database_sql,
    generate_create_database_sql,
    generate_drop_database_sql,
    parse_rows,
    redact,
)

MYSQL_SCRIPT = "mysql --defaults-extra-file=/etc/mysql/debian.cnf information_schema"

NO_WHITESPACE = re.compile(r"^\S+\Z")


def run_sql(node, sql):
    io.debug(f"{node.name}: running SQL: {redact(sql)}")
    try:
        return node.run("echo {sql} | {mysql}".format(sql=quote(sql + ";"), mysql=MYSQL_SCRIPT))
    except RemoteException:
        return None


def get_database(node, name):
    res = run_sql(node, database_query(name))
    if res is None:
        return None

    return database_state(parse_rows(res.stdout.decode()), name)


class MysqlDb(Item):
    """
    A MySql Database.
    """
    BUNDLE_ATTRIBUTE_NAME = "mysql_dbs"
    NEEDS_STATIC = [
        "pkg_apt:",
        "pkg_pacman:",
        "pkg_yum:",
        "pkg_zypper:",
    ]
    ITEM_ATTRIBUTES = {
        'delete': False,
        'collation': 'utf8_general_ci',
        'character_set': 'utf8',
    }
    ITEM_TYPE_NAME = "mysql_db"
    REQUIRED_ATTRIBUTES = []

    def __repr__(self):
        return "<MySqlDb name:{}>".format(self.name)

    def fix(self, status):
        if status.must_be_deleted:
            run_sql(self.node, generate_drop_database_sql(self.name))
        elif status.must_be_created:
            run_sql(self.node, generate_create_database_sql(
                self.name,
                self.attributes['character_set'],
                self.attributes['collation'],
            ))
        else:
            run_sql(self.node, generate_alter_database_sql(
                self.name,
                self.attributes['character_set'],
                self.attributes['collation'],
            ))

    def cdict(self):
        if self.attributes['delete']:
            return None

        cdict = {
            'type': 'mysql_db',
            'collation': self.attributes['collation'],
            'character_set': self.attributes['character_set'],
        }

        return cdict

    def sdict(self):
        db = get_database(self.node, self.name)

        if not db:
            return None

        sdict = {
            'type': 'mysql_db',
            'collation': db.get('collation', 'utf8_general_ci'),
            'character_set': db.get('character_set', 'utf8'),
        }

        return sdict

    @classmethod
    def validate_attributes(cls, bundle, item_id, attributes):
        if not isinstance(attributes.get('delete', True), bool):
            raise BundleError(_(
                "expected boolean for 'delete' on {item} in bundle '{bundle}'"
            ).format(
                bundle=bundle.name,
                item=item_id,
            ))

        for attr in ('character_set', 'collation'):
            if attr in attributes and not NO_WHITESPACE.match(str(attributes[attr])):
                raise BundleError(_(
                    "invalid {attr} '{value}' on {item} in bundle '{bundle}'"
                ).format(
                    attr=attr,
                    value=attributes[attr],
                    bundle=bundle.name,
                    item=item_id,
                ))

    def get_auto_deps(self, items):
        deps = []
        for item in items:
            if item.ITEM_TYPE_NAME == 'pkg_apt' and item.name in ('mysql-server', 'mariadb-server'):
                deps.append(item.id)
        return deps
