from typing import Optional, TypeVar, cast

T = TypeVar("T")


def assert_not_null(input: Optional[T], msg: str) -> T:
    assert input is not None, msg
    return cast(T, input)
