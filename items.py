from ipaddress import ip_network

from bw_mysql.backup import BackupSettings
from bw_mysql.identifiers import normalize

mariaDB = (node.os == 'debian' and node.os_version[0] >= 9)

# TODO: make version aware
if node.os == 'debian' and node.os_version[0] >= 10:
    pkg_name = 'mariadb-server'
else:
    pkg_name = 'mysql-server'

svc_systemd = {
    "mysql": {
        'needs': [f'pkg_apt:{pkg_name}'],
    }
}

mysql_users = {}

mysql_dbs = {}
files = {}
directories = {}

USER_PASSTHROUGH = [
    'privileges',
    'superuser',
    'max_user_connections',
    'max_connections_per_hour',
    'max_queries_per_hour',
    'max_updates_per_hour',
    'tls_options',
]

# check if we need to listen on all interfaces
all_v4 = False
all_v6 = False

for username, user in node.metadata.get('mysql', {}).get('users', {}).items():
    auth_type = user.get('auth_type', 'mysql_native_password')

    if auth_type == 'unix_socket':
        hosts = user.get('allowed_hosts', ['localhost']).copy()
    else:
        hosts = user.get('allowed_hosts', ['127.0.0.1', '::1', 'localhost']).copy()

    if user.get('delete', False):
        for host in hosts:
            mysql_users[normalize(f'{username}@{host}')] = {
                'delete': True,
                'needs': [f'pkg_apt:{pkg_name}'],
            }
        continue

    account = {
        'db_priv': {},
        'needs': [f'pkg_apt:{pkg_name}'],
    }

    if auth_type == 'unix_socket':
        account['plugin'] = 'unix_socket'
    else:
        pw_hash = user.get('password_hash', None)
        if pw_hash is not None:
            account['password_hash'] = pw_hash
        else:
            account['password'] = user.get('password', repo.vault.password_for("mysql_{}_mysql_user_{}".format(username, node.name)))

    for attr in USER_PASSTHROUGH:
        if attr in user:
            account[attr] = user[attr]

    for allowed_host in user.get('allowed_hosts', []):
        try:
            host = ip_network(allowed_host)

            if host.version == 4:
                all_v4 = True

            if host.version == 6:
                all_v6 = True
        except ValueError:
            pass

    for db, db_rights in user.get('db_priv', {}).items():
        account['db_priv'][db] = db_rights
        mysql_dbs[db] = {}

    for host in hosts:
        mysql_users[normalize(f'{username}@{host}')] = {
            key: (value.copy() if isinstance(value, (dict, list)) else value) for key, value in account.items()
        }

if node.os == 'debian' and node.os_version[0] >= 12:
    default_collation = 'utf8mb3_general_ci'
    default_character_set = 'utf8mb3'
else:
    default_collation = 'utf8_general_ci'
    default_character_set = 'utf8'

for db, db_config in node.metadata.get('mysql', {}).get('dbs', {}).items():
    mysql_dbs[db] = {
        'collation': db_config.get('collation', default_collation),
        'character_set': db_config.get('character_set', default_character_set),
        'needs': [f'pkg_apt:{pkg_name}'],
    }

bind_address = '127.0.0.1'

if all_v4:
    bind_address = '0.0.0.0'

if all_v6:
    bind_address = '::'

if mariaDB:
    files['/etc/mysql/mariadb.conf.d/99-custom.cnf'] = {
        'content': '[mysqld]\n' +
                   f'bind-address = {bind_address}\n' +
                   'max_allowed_packet = {}\n'.format(node.metadata.get('mysql', {}).get('max_allowed_packet', '64M')) +
                   'max_connections = {}\n'.format(node.metadata.get('mysql', {}).get('max_connections', '500')),
        'content_type': 'text',
        'mode': "0644",
        'owner': "root",
        'group': "root",
        'triggers': ["svc_systemd:mysql:restart"],
    }
else:
    files['/etc/mysql/conf.d/99-custom.cnf'] = {
        'content': '[mysqld]\n'
                   'bind-address = {}\n'.format(bind_address),
        'content_type': 'text',
        'mode': "0644",
        'owner': "root",
        'group': "root",
        'triggers': ["svc_systemd:mysql:restart"],
    }

if node.metadata.get('mysql', {}).get('backup', None) is not None:
    backup_metadata = dict(node.metadata.get('mysql', {}).get('backup'))
    if backup_metadata.get('password', None) is None:
        backup_metadata['password'] = repo.vault.password_for("mysql_backup_{}".format(node.name))

    backup = BackupSettings.from_metadata(backup_metadata)

    directories[backup.dir] = {
        'mode': backup.dir_mode,
        'owner': backup.dir_owner,
        'group': backup.dir_group,
    }

    files[backup.script_path] = {
        'source': backup.template,
        'content_type': 'mako',
        'context': backup.template_context(mariadb=(pkg_name == 'mariadb-server')),
        'mode': "0700",
        'owner': "root",
        'group': "root",
        'needs': [f'directory:{backup.dir}'],
    }

    files['/etc/cron.d/mysqlbackup'] = {
        'content': backup.cron_line(),
        'content_type': 'text',
        'mode': "0644",
        'owner': "root",
        'group': "root",
        'needs': [f'file:{backup.script_path}'],
    }
