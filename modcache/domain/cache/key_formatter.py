"""
Cache Key Formatter

Turns an operation name plus its parameters into the hash field name a
result is cached under. Keys must stay stable across processes: no
randomness, no timestamps, and the quirks below are load-bearing because
callers depend on existing fields being hit.

Parameters are classified once into a closed set of variants:

- NoParams       -> "default"
- ListParams     -> "array:" + ".item" per element (operation name NOT included)
- MappingParams  -> cache_key + ".name:value" per key, keys sorted
"""

import math
import re
from decimal import Decimal
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Tuple, Union

from .exceptions import InvalidArgumentType, InvalidParameterShape

DEFAULT_KEY = "default"
ARRAY_PREFIX = "array:"
KEY_SEPARATOR = "."
VALUE_SEPARATOR = ":"
ITEM_SEPARATOR = "-"

# First run of non-word characters (ASCII word set) is dropped from values
_NON_WORD_RUN = re.compile(r"[^A-Za-z0-9_]+")

Primitive = Union[str, int, float, bool, None]


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def _format_float(value: float) -> str:
    """
    Shortest round-trip digits, laid out like ECMAScript Number::toString.

    Plain notation for 1e-7 <= |value| < 1e21, exponent notation otherwise
    ("1e-7", "1.5e+300"). Negative zero renders as "0".
    """
    if value == 0:
        return "0"

    sign, digit_tuple, exponent = Decimal(repr(value)).normalize().as_tuple()
    digits = "".join(str(digit) for digit in digit_tuple)
    k = len(digits)
    n = exponent + k

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = digits[:n] + "." + digits[n:]
    elif -6 < n <= 0:
        text = "0." + "0" * -n + digits
    else:
        power = n - 1
        mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
        text = f"{mantissa}e{'+' if power > 0 else '-'}{abs(power)}"

    return "-" + text if sign else text


def stringify(value: Any) -> str:
    """Render a parameter the way the cache keys have always rendered it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return _format_float(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else stringify(item) for item in value)
    return str(value)


def format_value(value: Any) -> str:
    """Format one leaf of mapping params."""
    if isinstance(value, (list, tuple)):
        return ARRAY_PREFIX + "".join(
            ITEM_SEPARATOR + stringify(item) for item in value
        )

    if not value or _is_nan(value):
        # falsy primitives (0, False, None, NaN) are kept verbatim
        return stringify(value)

    return _NON_WORD_RUN.sub("", stringify(value), count=1).lower()


class CacheParams(ABC):
    """Parameters a cached result varies on."""

    @abstractmethod
    def format(self, cache_key: str) -> str:
        """Return the hash field name for cache_key."""

    @property
    def is_empty(self) -> bool:
        return False

    @staticmethod
    def from_raw(params: Any, operation: str = "Format") -> "CacheParams":
        """
        Classify raw params into a variant.

        Raises:
            InvalidArgumentType: params is not a mapping, list or None
            InvalidParameterShape: a nested mapping is used as a value
        """
        if isinstance(params, CacheParams):
            return params
        if params is None:
            return NO_PARAMS
        if isinstance(params, Mapping):
            return MappingParams.from_mapping(params)
        if isinstance(params, (list, tuple)):
            return ListParams.from_sequence(params)
        raise InvalidArgumentType(operation, params)


@dataclass(frozen=True)
class NoParams(CacheParams):
    """No parameters: every call shares the default field."""

    def format(self, cache_key: str) -> str:
        return DEFAULT_KEY

    @property
    def is_empty(self) -> bool:
        return True


@dataclass(frozen=True)
class ListParams(CacheParams):
    """Positional parameters."""

    items: Tuple[Any, ...]

    @classmethod
    def from_sequence(cls, params) -> "ListParams":
        for item in params:
            if isinstance(item, Mapping):
                raise InvalidParameterShape()
        return cls(tuple(params))

    def format(self, cache_key: str) -> str:
        # TODO: prefix with cache_key once existing list-keyed fields can be dropped
        return ARRAY_PREFIX + "".join(
            KEY_SEPARATOR + stringify(item) for item in self.items
        )


@dataclass(frozen=True)
class MappingParams(CacheParams):
    """Named parameters, held sorted by name."""

    items: Tuple[Tuple[str, Any], ...]

    @classmethod
    def from_mapping(cls, params: Mapping) -> "MappingParams":
        items = []
        for name, value in params.items():
            if isinstance(value, Mapping):
                raise InvalidParameterShape(str(name))
            if isinstance(value, (list, tuple)):
                if any(isinstance(item, Mapping) for item in value):
                    raise InvalidParameterShape(str(name))
                value = tuple(value)
            items.append((str(name), value))
        items.sort(key=lambda item: item[0])
        return cls(tuple(items))

    def format(self, cache_key: str) -> str:
        formatted = str(cache_key)
        for name, value in self.items:
            if stringify(value) == "":
                formatted += f"{KEY_SEPARATOR}{name}{KEY_SEPARATOR}"
            else:
                formatted += (
                    f"{KEY_SEPARATOR}{name}{VALUE_SEPARATOR}{format_value(value)}"
                )
        return formatted


NO_PARAMS = NoParams()


def format_key(cache_key: str, params: Any = None, operation: str = "Format") -> str:
    """
    Derive the hash field name for an operation and its params.

    Args:
        cache_key: Stable operation identifier, e.g. "getvalues"
        params: None, a list, a mapping, or an already classified CacheParams
        operation: Name used in error messages ("Set", "Get"...)

    Returns:
        Field name, e.g. "getvalues.id:1" for {"id": 1}
    """
    return CacheParams.from_raw(params, operation).format(cache_key)
