"""
Parsing and normalization of MySQL account identifiers ('user@host').

http://dev.mysql.com/doc/refman/5.5/en/identifiers.html
If at least one special char is used in the user part, it must be quoted.
"""
import re
from collections import namedtuple

from bundlewrap.exceptions import BundleError
from bundlewrap.utils.text import mark_for_translation as _

from .versions import version_lt

QUOTE_CHARS = "'`\""

HOST_PATTERN = r"[\w%.:\-/]+"

# http://stackoverflow.com/questions/8055727/negating-a-backreference-in-regular-expressions/8057827#8057827
QUOTED_USER = re.compile(r"^([" + QUOTE_CHARS + r"])((?:(?!\1).)*)\1@(" + HOST_PATTERN + r")\Z", re.ASCII)
BARE_USER = re.compile(r"^([0-9a-zA-Z$_]*)@(" + HOST_PATTERN + r")\Z", re.ASCII)
SYMBOLIC_USER = re.compile(r"^((?![" + QUOTE_CHARS + r"]).*[^0-9a-zA-Z$_].*)@(.+)\Z")


class InvalidIdentifier(BundleError):
    pass


class NameTooLong(BundleError):
    pass


class AccountIdentifier(namedtuple('AccountIdentifier', ['user', 'host', 'quote'])):
    """
    A parsed account. 'user' is stored without its quotes, 'quote' is the
    quote character the user part was written with ('' if none).
    """
    __slots__ = ()

    @property
    def quoted(self):
        return self.quote != ''

    @property
    def user_part(self):
        return f"{self.quote}{self.user}{self.quote}"

    def __str__(self):
        return f"{self.user_part}@{self.host}"


def _match_quoted(value):
    matches = QUOTED_USER.match(value)
    if matches:
        return matches.group(2), matches.group(3), matches.group(1)


def _match_bare(value):
    matches = BARE_USER.match(value)
    if matches:
        return matches.group(1), matches.group(2), ''


def _match_symbolic(value):
    matches = SYMBOLIC_USER.match(value)
    if matches:
        return matches.group(1), matches.group(2), ''


# tried in order, the first match wins
MATCHERS = (
    ('quoted', _match_quoted),
    ('bare', _match_bare),
    ('symbolic', _match_symbolic),
)

LENGTH_LIMITS = (
    (lambda version: version_lt(version, '5.7.8'), 16),
    (lambda version: version_lt(version, '10.0.0'), 32),
    (lambda version: True, 80),
)


def max_user_length(version):
    if version is None:
        return None

    for applies, limit in LENGTH_LIMITS:
        if applies(str(version)):
            return limit


def parse(value):
    for shape, matcher in MATCHERS:
        result = matcher(value)
        if result is not None:
            user, host, quote = result
            return AccountIdentifier(user, host.lower(), quote)

    raise InvalidIdentifier(_("Invalid database user {user}.").format(user=value))


def parse_and_normalize(value, version=None):
    """
    Parses 'value' into an AccountIdentifier with a lower-cased host.

    When the MySQL/MariaDB 'version' is given, the user part is checked
    against the name length limit of that server version.
    """
    account = parse(value)

    limit = max_user_length(version)
    if limit is not None and len(account.user) > limit:
        raise NameTooLong(_(
            "MySQL usernames are limited to a maximum of {limit} characters."
        ).format(limit=limit))

    return account


def normalize(value):
    return str(parse(value))
