"""
Cache Value Objects

Immutable value objects for the module cache: the bucket name and the
bucket-wide expiry applied on every write.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ModuleCacheKey:
    """
    Name of one Redis hash holding every cached field of a module.

    Never mutated after the owning cache is constructed.
    """

    value: str

    def __post_init__(self) -> None:
        """Validate module cache key."""
        if not isinstance(self.value, str):
            raise TypeError("Module cache key must be a string")
        if not self.value:
            raise ValueError("Module cache key cannot be empty")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CacheExpire:
    """
    Bucket expiry in seconds.

    Applied to the whole hash, so writing one field refreshes all of them.
    """

    seconds: int

    def __post_init__(self) -> None:
        """Validate expiry value."""
        if isinstance(self.seconds, bool) or not isinstance(self.seconds, int):
            raise TypeError("Cache expiry must be an integer number of seconds")
        if self.seconds <= 0:
            raise ValueError("Cache expiry must be positive")

    @classmethod
    def of(cls, value: Union[int, "CacheExpire"]) -> "CacheExpire":
        """Coerce an int or an existing CacheExpire."""
        if isinstance(value, CacheExpire):
            return value
        return cls(value)

    def __str__(self) -> str:
        return f"{self.seconds}s"
