import json
from typing import Any, Optional, Type, TypeVar, cast, get_origin

from .logging import couch_warning

T = TypeVar("T")


def dumps_with_ellipsis(obj: Any, limit: int = 100) -> str:
    """
    Dumps an object to JSON and shortens the result to the given length by
    replacing the middle with an ellipsis.

    Args:
        obj (Any): The object to dump.
        limit (int): The maximum length of the resulting string, including the ellipsis. Default is 100.

    Returns:
        str: The JSON text, truncated in the middle if it exceeds the limit.
    """
    text = json.dumps(obj, default=str)
    if len(text) <= limit:
        return text

    half_length = (limit - 3) // 2
    return f"{text[:half_length]}...{text[-half_length:]}"


def _checked(key: str, value: Any, type: Type[T]) -> T:
    # Parameterized generics (list[dict]) can only be checked by their origin
    origin = get_origin(type) or type
    if not isinstance(value, cast(Type, origin)):
        raise ValueError(f"Expecting {type} for key {key} but found {value!r} instead")

    return cast(T, value)


def _assert_string_entry(d: dict, key: str) -> str:
    return _get_typed_required(d, key, str)


def _get_str_or_default(d: dict, key: str, default: str) -> str:
    if key not in d:
        return default

    return _checked(key, d[key], str)


def _get_bool_or_default(d: dict, key: str, default: bool) -> bool:
    if key not in d:
        couch_warning(f"{key} not present in dictionary, using default {default}!")
        return default

    return _checked(key, d[key], bool)


def _get_typed(d: dict, key: str, type: Type[T]) -> Optional[T]:
    value = d.get(key)
    if value is None:
        return None

    return _checked(key, value, type)


def _get_typed_nonnull(d: dict, key: str, type: Type[T], default: T) -> T:
    found_val = _get_typed(d, key, type)
    return found_val if found_val is not None else default


def _get_typed_required(d: dict, key: str, type: Type[T]) -> T:
    if key not in d:
        raise ValueError(f"Missing required key {key} in dictionary!")

    return _checked(key, d[key], type)
