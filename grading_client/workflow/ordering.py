import re
from collections.abc import Iterable

_LEADING_NUMBER = re.compile(r"^\d+")


def question_sort_key(key: str) -> tuple[int, int, str]:
    """Sort key: leading integer first, then the full key string.

    Keys without a leading number sort after every numbered key.
    """
    match = _LEADING_NUMBER.match(key)
    if match is None:
        return (1, 0, key)
    return (0, int(match.group()), key)


def order_question_keys(keys: Iterable[str]) -> list[str]:
    """Order question keys for display, e.g. 1a, 1b, 2, 10 rather than 1a, 10, 1b, 2."""
    return sorted(keys, key=question_sort_key)
