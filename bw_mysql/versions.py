import re

VERSION_TOKEN = re.compile(r"[-.]|\d+|[^-.\d]+")


def _cmp(a, b):
    return (a > b) - (a < b)


def version_cmp(version_a, version_b):
    """
    Compares two version strings the way package managers do.

    Returns -1, 0 or 1. Digit runs are compared numerically, anything else
    as upper-cased text, so '10.5.12-MariaDB' sorts after '10.0.0'.
    """
    tokens_a = VERSION_TOKEN.findall(version_a)
    tokens_b = VERSION_TOKEN.findall(version_b)

    for a, b in zip(tokens_a, tokens_b):
        if a == b:
            continue
        if a == '-':
            return -1
        if b == '-':
            return 1
        if a == '.':
            return -1
        if b == '.':
            return 1
        if a.isdigit() and b.isdigit():
            if a.startswith('0') or b.startswith('0'):
                return _cmp(a.upper(), b.upper())
            return _cmp(int(a), int(b))
        return _cmp(a.upper(), b.upper())

    return _cmp(version_a, version_b)


def version_lt(version_a, version_b):
    return version_cmp(version_a, version_b) < 0
