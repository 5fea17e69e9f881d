import re


AVAILABLE_PRIVS = [
    'Select_priv',
    'Insert_priv',
    'Update_priv',
    'Delete_priv',
    'Create_priv',
    'Drop_priv',
    'Reload_priv',
    'Shutdown_priv',
    'Process_priv',
    'File_priv',
    'Grant_priv',
    'References_priv',
    'Index_priv',
    'Alter_priv',
    'Show_db_priv',
    'Super_priv',
    'Create_tmp_table_priv',
    'Lock_tables_priv',
    'Execute_priv',
    'Repl_slave_priv',
    'Repl_client_priv',
    'Create_view_priv',
    'Show_view_priv',
    'Create_routine_priv',
    'Alter_routine_priv',
    'Create_user_priv',
    'Event_priv',
    'Trigger_priv',
    'Create_tablespace_priv',
]

SQL_AVAILABLE_PRIVS = {
    'Select_priv': 'SELECT',
    'Insert_priv': 'INSERT',
    'Update_priv': 'UPDATE',
    'Delete_priv': 'DELETE',
    'Create_priv': 'CREATE',
    'Drop_priv': 'DROP',
    'Reload_priv': 'RELOAD',
    'Shutdown_priv': 'SHUTDOWN',
    'Process_priv': 'PROCESS',
    'File_priv': 'FILE',
    'Grant_priv': 'GRANT OPTION',
    'References_priv': 'REFERENCES',
    'Index_priv': 'INDEX',
    'Alter_priv': 'ALTER',
    'Show_db_priv': 'SHOW DATABASES',
    'Super_priv': 'SUPER',
    'Create_tmp_table_priv': 'CREATE TEMPORARY TABLES',
    'Lock_tables_priv': 'LOCK TABLES',
    'Execute_priv': 'EXECUTE',
    'Repl_slave_priv': 'REPLICATION SLAVE',
    'Repl_client_priv': 'REPLICATION CLIENT',
    'Create_view_priv': 'CREATE VIEW',
    'Show_view_priv': 'SHOW VIEW',
    'Create_routine_priv': 'CREATE ROUTINE',
    'Alter_routine_priv': 'ALTER ROUTINE',
    'Create_user_priv': 'CREATE USER',
    'Event_priv': 'EVENT',
    'Trigger_priv': 'TRIGGER',
    'Create_tablespace_priv': 'CREATE TABLESPACE',
}

AVAILABLE_DB_PRIVS = [
    'Select_priv',
    'Insert_priv',
    'Update_priv',
    'Delete_priv',
    'Create_priv',
    'Drop_priv',
    'Grant_priv',
    'References_priv',
    'Index_priv',
    'Alter_priv',
    'Create_tmp_table_priv',
    'Lock_tables_priv',
    'Create_view_priv',
    'Show_view_priv',
    'Create_routine_priv',
    'Alter_routine_priv',
    'Execute_priv',
    'Event_priv',
    'Trigger_priv',
]

SQL_AVAILABLE_DB_PRIVS = {
    'Select_priv': 'SELECT',
    'Insert_priv': 'INSERT',
    'Update_priv': 'UPDATE',
    'Delete_priv': 'DELETE',
    'Create_priv': 'CREATE',
    'Drop_priv': 'DROP',
    'Grant_priv': 'GRANT OPTION',
    'References_priv': 'REFERENCES',
    'Index_priv': 'INDEX',
    'Alter_priv': 'ALTER',
    'Create_tmp_table_priv': 'CREATE TEMPORARY TABLES',
    'Lock_tables_priv': 'LOCK TABLES',
    'Create_view_priv': 'CREATE VIEW',
    'Show_view_priv': 'SHOW VIEW',
    'Create_routine_priv': 'CREATE ROUTINE',
    'Alter_routine_priv': 'ALTER ROUTINE',
    'Execute_priv': 'EXECUTE',
    'Event_priv': 'EVENT',
    'Trigger_priv': 'TRIGGER',
}

# MariaDB >= 10.3.4
MARIADB_EXTRA_PRIVS = {
    'Delete_history_priv': 'DELETE HISTORY',
}

# attribute name -> (mysql.user column, WITH clause keyword)
RESOURCE_LIMITS = [
    ('max_user_connections', 'max_user_connections', 'MAX_USER_CONNECTIONS'),
    ('max_connections_per_hour', 'max_connections', 'MAX_CONNECTIONS_PER_HOUR'),
    ('max_queries_per_hour', 'max_questions', 'MAX_QUERIES_PER_HOUR'),
    ('max_updates_per_hour', 'max_updates', 'MAX_UPDATES_PER_HOUR'),
]

USER_COLUMNS = [
    'Host',
    'User',
    'Password',
    'plugin',
] + [column for _attr, column, _keyword in RESOURCE_LIMITS] + [
    'ssl_type',
    'ssl_cipher',
    'x509_issuer',
    'x509_subject',
]


def privilege_tables(mariadb=False):
    """
    Returns copies of the global and per-db privilege tables, including the
    MariaDB only privileges if requested.
    """
    available_privs = AVAILABLE_PRIVS.copy()
    sql_available_privs = SQL_AVAILABLE_PRIVS.copy()
    available_db_privs = AVAILABLE_DB_PRIVS.copy()
    sql_available_db_privs = SQL_AVAILABLE_DB_PRIVS.copy()

    if mariadb:
        for priv, sql_priv in MARIADB_EXTRA_PRIVS.items():
            available_privs.append(priv)
            sql_available_privs[priv] = sql_priv
            available_db_privs.append(priv)
            sql_available_db_privs[priv] = sql_priv

    return available_privs, sql_available_privs, available_db_privs, sql_available_db_privs


def quote_string(value):
    return "'{}'".format(str(value).replace("\\", "\\\\").replace("'", "\\'"))


def quote_identifier(name):
    return "`{}`".format(str(name).replace("`", "``"))


def account_sql(account):
    return f"{quote_string(account.user)}@{quote_string(account.host)}"


def identified_sql(password_hash, plugin=None):
    if plugin:
        sql = f" IDENTIFIED WITH {plugin}"
        if password_hash:
            sql += f" AS {quote_string(password_hash)}"
        return sql

    if password_hash:
        return f" IDENTIFIED BY PASSWORD {quote_string(password_hash)}"

    return ''


def require_sql(tls_options):
    if not tls_options:
        return ''

    return " REQUIRE {}".format(" AND ".join(tls_options))


def limits_sql(limits):
    clauses = []
    for attr, _column, keyword in RESOURCE_LIMITS:
        if limits.get(attr) is not None:
            clauses.append(f"{keyword} {int(limits[attr])}")

    if not clauses:
        return ''

    return " WITH {}".format(" ".join(clauses))


def generate_insert_user_sql(account, password_hash, privs, sql_available_privileges, plugin=None,
                             tls_options=None, limits=None):
    sql = f"CREATE USER {account_sql(account)}"
    sql += identified_sql(password_hash, plugin)
    sql += require_sql(tls_options)
    sql += limits_sql(limits or {})
    sql += ";"
    sql += generate_grant_privileges_sql(account, privs, sql_available_privileges)

    return sql


def generate_update_user_sql(account, password_hash, privs, sql_available_privileges, plugin=None,
                             tls_options=None, limits=None):
    sql = f"ALTER USER {account_sql(account)}"
    sql += identified_sql(password_hash, plugin)
    sql += require_sql(tls_options)
    sql += limits_sql(limits or {})
    sql += ";"
    sql += generate_grant_privileges_sql(account, privs, sql_available_privileges)

    return sql


def generate_grant_privileges_sql(account, privs, sql_available_privileges):
    sql = ''
    for priv, value in privs.items():
        if priv not in sql_available_privileges:
            continue

        priv = sql_available_privileges[priv]

        if value == 'Y':
            sql += f"GRANT {priv} ON *.* TO {account_sql(account)};"
        else:
            sql += f"REVOKE {priv} ON *.* FROM {account_sql(account)};"

    return sql


def generate_delete_user_sql(account):
    return f"DROP USER {account_sql(account)};"


def generate_insert_db_priv_sql(account, db, privs, sql_available_db_privs):
    sql = ''
    for priv in [x for x, y in privs.items() if y == 'Y']:
        if priv not in sql_available_db_privs:
            continue

        priv = sql_available_db_privs[priv]
        sql += f"GRANT {priv} ON {quote_identifier(db)}.* TO {account_sql(account)};"

    return sql


def generate_update_db_priv_sql(account, db, privs, sql_available_db_privs):
    sql = ''
    for priv, value in privs.items():
        if priv not in sql_available_db_privs:
            continue

        priv = sql_available_db_privs[priv]

        if value == 'Y':
            sql += f"GRANT {priv} ON {quote_identifier(db)}.* TO {account_sql(account)};"
        else:
            sql += f"REVOKE {priv} ON {quote_identifier(db)}.* FROM {account_sql(account)};"

    return sql


def generate_delete_db_priv_sql(account, db):
    return f"REVOKE ALL PRIVILEGES ON {quote_identifier(db)}.* FROM {account_sql(account)};"


def user_query(account, available_privs):
    return "SELECT {columns} FROM mysql.user WHERE User={user} AND Host={host}".format(
        columns=", ".join(USER_COLUMNS + available_privs),
        user=quote_string(account.user),
        host=quote_string(account.host),
    )


def db_privileges_query(account, available_db_privs):
    return "SELECT Host, Db, User, {priv} FROM mysql.db WHERE User={user} AND Host={host}".format(
        priv=", ".join(available_db_privs),
        user=quote_string(account.user),
        host=quote_string(account.host),
    )


def parse_rows(output):
    """
    Splits the tab separated batch output of the mysql client into rows,
    dropping the header line.
    """
    rows = []
    for line in output.split("\n")[1:]:
        if '\t' not in line:
            continue

        rows.append(line.split('\t'))

    return rows


def _tls_options(ssl_type, ssl_cipher, x509_issuer, x509_subject):
    ssl_type = ssl_type.upper()
    if ssl_type in ('', 'NULL'):
        return ['NONE']
    if ssl_type == 'ANY':
        return ['SSL']
    if ssl_type == 'X509':
        return ['X509']

    options = []
    for keyword, value in (('CIPHER', ssl_cipher), ('ISSUER', x509_issuer), ('SUBJECT', x509_subject)):
        if value not in ('', 'NULL'):
            options.append(f"{keyword} {quote_string(value)}")

    return sorted(options)


def user_state(rows, available_privs):
    if not rows:
        return None

    # (Host, User) is the primary key of mysql.user
    row = rows[0]
    (host, user, password, plugin, *rest) = row
    limit_values = rest[:len(RESOURCE_LIMITS)]
    (ssl_type, ssl_cipher, x509_issuer, x509_subject) = rest[len(RESOURCE_LIMITS):len(RESOURCE_LIMITS) + 4]
    user_privileges = rest[len(RESOURCE_LIMITS) + 4:]

    privileges = []
    for i in range(len(available_privs)):
        if user_privileges[i].upper() == 'Y':
            privileges.append(available_privs[i])

    state = {
        'password_hash': password,
        'plugin': plugin if plugin not in ('', 'NULL') else None,
        'privileges': privileges,
        'tls_options': _tls_options(ssl_type, ssl_cipher, x509_issuer, x509_subject),
    }

    for (attr, _column, _keyword), value in zip(RESOURCE_LIMITS, limit_values):
        state[attr] = int(value)

    return state


def db_privileges_state(rows, available_db_privs):
    privileges = {}
    for (host, db, user, *db_privileges) in rows:
        privileges[db] = []
        for i in range(len(available_db_privs)):
            if db_privileges[i].upper() == 'Y':
                privileges[db].append(available_db_privs[i])

    return_value = {
        'db_priv': sorted(privileges.keys()),
    }

    for db, db_privs in privileges.items():
        return_value['db_{}_priv'.format(db)] = db_privs

    return return_value


def generate_create_database_sql(name, character_set, collation):
    return "CREATE DATABASE {name} CHARACTER SET {character_set} COLLATE {collation}".format(
        name=quote_identifier(name),
        character_set=character_set,
        collation=collation,
    )


def generate_alter_database_sql(name, character_set, collation):
    return "ALTER DATABASE {name} CHARACTER SET {character_set} COLLATE {collation}".format(
        name=quote_identifier(name),
        character_set=character_set,
        collation=collation,
    )


def generate_drop_database_sql(name):
    return "DROP DATABASE {}".format(quote_identifier(name))


def database_query(name):
    return "SELECT SCHEMA_NAME, DEFAULT_CHARACTER_SET_NAME, DEFAULT_COLLATION_NAME " \
           "FROM SCHEMATA WHERE SCHEMA_NAME={}".format(quote_string(name))


def database_state(rows, name):
    for (db, charset, collation) in rows:
        if db == name:
            return {
                'db': db,
                'collation': collation,
                'character_set': charset,
            }

    return None


def privilege_columns(sql_privileges):
    """
    Maps SQL privilege names ('LOCK TABLES') to their mysql.user column
    names ('Lock_tables_priv').
    """
    columns = {sql_priv: priv for priv, sql_priv in SQL_AVAILABLE_PRIVS.items()}
    return [columns[sql_priv] for sql_priv in sql_privileges]


PASSWORD_CLAUSE = re.compile(r"((?:BY PASSWORD|\bAS)\s+)'(?:[^'\\]|\\.)*'")


def redact(sql):
    """
    Replaces password hashes in 'sql' so the statement can be logged.
    """
    return PASSWORD_CLAUSE.sub(r"\1'[redacted]'", sql)
