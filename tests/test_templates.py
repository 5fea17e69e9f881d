import pytest
from mako.template import Template

from bw_mysql.backup import BackupSettings

from conftest import BUNDLE_DIR

DEFAULTS = {
    'user': 'testuser',
    'password': 'testpass',
    'dir': '/tmp/mysql-backup',
    'rotate': 25,
    'delete_before_dump': True,
    'exec_path': '/usr/bin:/usr/sbin:/bin:/sbin:/opt/zimbra/bin',
    'max_allowed_packet': '1M',
}


def render(mariadb=False, **settings):
    backup = BackupSettings(**dict(DEFAULTS, **settings))
    template = Template(filename=str(BUNDLE_DIR / 'files' / backup.template))
    return template.render(**backup.template_context(mariadb=mariadb))


class TestMysqldumpScript:
    def test_compression_by_default(self):
        assert 'bzcat -zc' in render()

    def test_compression_disabled(self):
        content = render(compress=False)
        assert 'bzcat -zc' not in content
        assert '.sql.bz2' not in content

    def test_skips_events_by_default(self):
        assert 'ADDITIONAL_OPTIONS="--ignore-table=mysql.event"' in render()

    def test_backup_events(self):
        assert 'ADDITIONAL_OPTIONS="--events"' in render(ignore_events=False)

    def test_no_triggers_or_routines_for_full_dump(self):
        content = render()
        assert 'triggers' not in content
        assert 'routines' not in content

    def test_rotation_counts_from_zero(self):
        assert 'ROTATE=24\n' in render()

    def test_path(self):
        assert 'PATH=/usr/bin:/usr/sbin:/bin:/sbin:/opt/zimbra/bin\n' in render()

    def test_success_file(self):
        assert 'touch /tmp/mysqlbackup_success' not in render()
        assert 'touch /tmp/mysqlbackup_success' in render(delete_before_dump=False)
        assert 'touch /opt/mysqlbackup_success' in render(delete_before_dump=False,
                                                         success_file='/opt/mysqlbackup_success')

    def test_database_list(self):
        content = render(databases=['mysql'])
        assert '--databases mysql | bzcat -zc > "$DIR/$PREFIX"mysql_`date' in content
        assert '--all-databases' not in content
        assert 'ADDITIONAL_OPTIONS="$ADDITIONAL_OPTIONS --skip-triggers"' in content
        assert 'ADDITIONAL_OPTIONS="$ADDITIONAL_OPTIONS --skip-routines"' in content

    @pytest.mark.parametrize("per_database", [{'databases': ['mysql']}, {'file_per_database': True}])
    def test_triggers_and_routines(self, per_database):
        content = render(include_triggers=True, include_routines=True, **per_database)
        assert 'ADDITIONAL_OPTIONS="$ADDITIONAL_OPTIONS --triggers"' in content
        assert 'ADDITIONAL_OPTIONS="$ADDITIONAL_OPTIONS --routines"' in content

    def test_file_per_database(self):
        content = render(file_per_database=True)
        assert 'SHOW DATABASES' in content
        assert 'bzcat -zc' in content

    def test_file_per_database_uncompressed(self):
        content = render(file_per_database=True, compress=False)
        assert 'SHOW DATABASES' in content
        assert 'bzcat -zc' not in content

    def test_postscript(self):
        assert 'rsync -a /tmp backup01.local-lan:' in render(postscript='rsync -a /tmp backup01.local-lan:')

    def test_postscripts(self):
        content = render(postscript=[
            'rsync -a /tmp backup01.local-lan:',
            'rsync -a /tmp backup02.local-lan:',
        ])
        assert 'rsync -a /tmp backup01.local-lan:\n\nrsync -a /tmp backup02.local-lan:' in content

    def test_credentials(self):
        content = render()
        assert 'USER=testuser\n' in content
        assert "PASS='testpass'\n" in content


class TestXtrabackupScript:
    def test_arguments(self):
        content = render(provider='xtrabackup', databases=['db1', 'db2'], optional_args=['--parallel=4'])
        assert 'xtrabackup --backup --target-dir="$TARGET" --user="testuser" --password="testpass" ' \
               '--compress --databases="db1 db2" --parallel=4\n' in content

    def test_mariabackup(self):
        content = render(mariadb=True, provider='xtrabackup')
        assert 'mariabackup --backup --target-dir="$TARGET" --user="testuser"' in content
        assert 'xtrabackup --backup' not in content

    def test_success_file(self):
        assert 'touch /tmp/mysqlbackup_success' in render(provider='xtrabackup', delete_before_dump=False)
