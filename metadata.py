from ipaddress import ip_network

from bw_mysql.backup import BackupSettings
from bw_mysql.sql import privilege_columns

defaults = {}

mariaDB = (node.os == 'debian' and node.os_version[0] >= 10)

# add apt packages
if node.has_bundle("apt"):
    defaults['apt'] = {
        'packages': {},
    }
    if mariaDB:
        # install mariadb-server for current os
        defaults['apt']['packages']['mariadb-server'] = {'installed': True}
    else:
        # install mysql-server for current os
        defaults['apt']['packages']['mysql-server'] = {'installed': True}


@metadata_reactor
def add_backup_packages(metadata):
    if not node.has_bundle('apt'):
        raise DoNotRunAgain

    backup = metadata.get('mysql/backup', None)
    if backup is None:
        return {}

    packages = {}
    if backup.get('provider', 'mysqldump') == 'xtrabackup':
        packages['mariadb-backup' if mariaDB else 'percona-xtrabackup'] = {'installed': True}
    elif backup.get('compress', True):
        packages['bzip2'] = {'installed': True}

    return {
        'apt': {
            'packages': packages,
        },
    }


@metadata_reactor
def add_backup_user(metadata):
    backup_metadata = metadata.get('mysql/backup', None)
    if backup_metadata is None:
        return {}

    backup = BackupSettings.from_metadata(dict(backup_metadata))
    password = backup.password
    if password is None:
        password = repo.vault.password_for("mysql_backup_{}".format(node.name))

    return {
        'mysql': {
            'users': {
                backup.user: {
                    'password': password,
                    'allowed_hosts': ['localhost'],
                    'privileges': privilege_columns(backup.privileges()),
                },
            },
        },
    }


@metadata_reactor
def add_iptables_rules(metadata):
    if not node.has_bundle('iptables'):
        raise DoNotRunAgain

    allowed_hosts = set([])
    for user_name, mysql_config in metadata.get('mysql/users', {}).items():
        for allowed_host in mysql_config.get('allowed_hosts', []):
            try:
                # check if nework is ip
                ip_network(allowed_host)
                allowed_hosts.add(allowed_host)
            except ValueError:
                pass

    iptables_rules = {}
    for allowed_host in sorted(allowed_hosts):
        iptables_rules += repo.libs.iptables.accept().chain('INPUT').source(allowed_host).tcp().dest_port(3306)

    return iptables_rules


@metadata_reactor
def add_restic_rules(metadata):
    if not node.has_bundle('restic'):
        raise DoNotRunAgain

    restic_cmd = {}
    for db in sorted(metadata.get('mysql/dbs', {})):
        restic_cmd['mysql_{}.sql'.format(db)] = \
            'mysqldump --defaults-extra-file=/etc/mysql/debian.cnf {}'.format(db)

    return {
        'restic': {
            'stdin_commands': restic_cmd,
        }
    }
