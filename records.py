"""Helpers for building config dataclasses from decoded JSON sections."""

from dataclasses import fields
from typing import Any, Dict, Type, TypeVar

from errors import DecodeError

T = TypeVar("T")


def from_mapping(cls: Type[T], data: Any, **nested: Any) -> T:
    """
    Build a flat config dataclass from a JSON object.

    Keys that are not fields of ``cls`` are ignored, and null values keep
    the field default. Already-built nested sections are passed as keyword
    arguments and override whatever is in ``data``.

    Raises:
        DecodeError: If ``data`` is not an object
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise DecodeError(f"{cls.__name__} section must be an object, got {type(data).__name__}")

    names = {f.name for f in fields(cls)}
    kwargs: Dict[str, Any] = {k: v for k, v in data.items() if k in names and v is not None}
    kwargs.update(nested)
    return cls(**kwargs)
