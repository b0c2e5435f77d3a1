"""Dictionary merging helpers."""

import copy


def deep_merge(base: dict, override: dict | None) -> dict:
    """
    Recursively merge two mappings into a new dictionary.

    Values from ``override`` win; nested mappings are merged key by key.
    Neither input is modified.
    """
    result = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def merge_defaults(values: dict, defaults: dict) -> dict:
    """
    Fill missing keys of ``values`` from ``defaults`` without overwriting anything.

    Args:
        values: User supplied mapping
        defaults: Default mapping

    Returns:
        New dictionary with every user value kept as-is
    """
    result = copy.deepcopy(values)
    for key, default in defaults.items():
        if key not in result:
            result[key] = copy.deepcopy(default)
        elif isinstance(result[key], dict) and isinstance(default, dict):
            result[key] = merge_defaults(result[key], default)
    return result


def drop_none(values: dict) -> dict:
    """Copy of a mapping without its None values."""
    return {key: value for key, value in values.items() if value is not None}
