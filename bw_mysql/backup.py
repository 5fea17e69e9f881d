from dataclasses import dataclass, field, fields

from bundlewrap.exceptions import BundleError
from bundlewrap.utils.text import mark_for_translation as _

PROVIDERS = {
    'mysqldump': 'mysqlbackup.sh',
    'xtrabackup': 'xtrabackup.sh',
}

MYSQLDUMP_PRIVILEGES = ['SELECT', 'RELOAD', 'LOCK TABLES', 'SHOW VIEW', 'PROCESS']
XTRABACKUP_PRIVILEGES = ['RELOAD', 'PROCESS', 'LOCK TABLES', 'REPLICATION CLIENT']


def build_args(user, password, compress, databases, extra_args):
    """
    Returns the argument string handed to the backup tool.

    Segments are always emitted in the same order (credentials, compression,
    databases, extra arguments) since the backup script matches on them.
    Extra arguments are used verbatim, quoting them is up to the caller.
    """
    args = []
    if user and password:
        args.append(f'--user="{user}" --password="{password}"')

    if compress:
        args.append('--compress')

    if databases:
        args.append('--databases="{}"'.format(' '.join(databases)))

    for arg in extra_args or []:
        args.append(arg)

    return ' '.join(args)


def backup_privileges(include_triggers=False, provider='mysqldump'):
    if provider == 'xtrabackup':
        return XTRABACKUP_PRIVILEGES.copy()

    privileges = MYSQLDUMP_PRIVILEGES.copy()
    if include_triggers:
        privileges.append('TRIGGER')

    return privileges


def dump_options(ignore_events=True, include_triggers=False, include_routines=False, per_database=False,
                 optional_args=None):
    options = ['--ignore-table=mysql.event' if ignore_events else '--events']

    # triggers and routines are only dumped explicitly when dumping single databases
    if per_database:
        options.append('--triggers' if include_triggers else '--skip-triggers')
        options.append('--routines' if include_routines else '--skip-routines')

    options += optional_args or []

    return options


def _as_list(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [value, ]
    return list(value)


@dataclass
class BackupSettings:
    provider: str = 'mysqldump'
    user: str = 'backup'
    password: object = None
    dir: str = '/var/backups/mysql'
    dir_mode: str = '0700'
    dir_owner: str = 'root'
    dir_group: str = 'root'
    compress: bool = True
    rotate: int = 30
    databases: list = field(default_factory=list)
    file_per_database: bool = False
    include_triggers: bool = False
    include_routines: bool = False
    ignore_events: bool = True
    delete_before_dump: bool = False
    success_file: str = '/tmp/mysqlbackup_success'
    max_allowed_packet: str = '1M'
    exec_path: str = '/usr/bin:/usr/sbin:/bin:/sbin'
    prescript: list = field(default_factory=list)
    postscript: list = field(default_factory=list)
    optional_args: list = field(default_factory=list)
    time: tuple = (23, 5)
    script_path: str = '/usr/local/sbin/mysqlbackup.sh'

    def __post_init__(self):
        if self.provider not in PROVIDERS:
            raise BundleError(_(
                "unknown backup provider '{provider}', expected one of: {providers}"
            ).format(
                provider=self.provider,
                providers=", ".join(sorted(PROVIDERS)),
            ))

        if not isinstance(self.rotate, int) or self.rotate < 1:
            raise BundleError(_(
                "expected a positive integer for backup 'rotate', got {rotate!r}"
            ).format(rotate=self.rotate))

        self.databases = _as_list(self.databases)
        self.prescript = _as_list(self.prescript)
        self.postscript = _as_list(self.postscript)
        self.optional_args = _as_list(self.optional_args)
        self.time = tuple(self.time)

    @classmethod
    def from_metadata(cls, backup_metadata):
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(backup_metadata) - known)
        if unknown:
            raise BundleError(_(
                "unknown keys in mysql/backup metadata: {keys}"
            ).format(keys=", ".join(unknown)))

        return cls(**backup_metadata)

    @property
    def template(self):
        return PROVIDERS[self.provider]

    @property
    def per_database(self):
        return self.file_per_database or bool(self.databases)

    def privileges(self):
        return backup_privileges(self.include_triggers, self.provider)

    def args(self):
        return build_args(self.user, self.password, self.compress, self.databases, self.optional_args)

    def template_context(self, mariadb=False):
        return {
            'backup_binary': 'mariabackup' if mariadb else 'xtrabackup',
            'backup_user': self.user,
            'backup_password': self.password,
            'backup_dir': self.dir,
            'backup_compress': self.compress,
            # the script counts from 0
            'backup_rotate': self.rotate - 1,
            'backup_databases': self.databases,
            'file_per_database': self.file_per_database,
            'delete_before_dump': self.delete_before_dump,
            'success_file': self.success_file,
            'max_allowed_packet': self.max_allowed_packet,
            'exec_path': self.exec_path,
            'prescript': self.prescript,
            'postscript': self.postscript,
            'additional_options': dump_options(
                ignore_events=self.ignore_events,
                include_triggers=self.include_triggers,
                include_routines=self.include_routines,
                per_database=self.per_database,
                optional_args=self.optional_args,
            ),
            'backup_args': self.args(),
        }

    def cron_line(self):
        hour, minute = self.time
        return f"{minute} {hour} * * * root {self.script_path}\n"
