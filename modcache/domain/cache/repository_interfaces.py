"""
Cache Repository Interfaces

Abstract repository for the hash-bucket store behind every module cache.
One bucket (hash) per module, one field per formatted key.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional


class HashBucketRepository(ABC):
    """
    Abstract repository for hash-bucket operations.

    Implementations raise CacheStorageException for any store failure.
    """

    @abstractmethod
    async def hash_field_set(self, bucket: str, field: str, value: str) -> int:
        """Upsert one field. Returns the number of new fields created."""
        pass

    @abstractmethod
    async def hash_field_get(self, bucket: str, field: str) -> Optional[str]:
        """Get one field, or None if absent."""
        pass

    @abstractmethod
    async def bucket_expire(self, bucket: str, seconds: int) -> bool:
        """Set or refresh the TTL of the whole bucket."""
        pass

    @abstractmethod
    async def hash_get_all(self, bucket: str) -> Dict[str, str]:
        """Get every field and value of the bucket."""
        pass

    @abstractmethod
    async def hash_field_delete(self, bucket: str, field: str) -> int:
        """Delete one field. Returns the number of fields removed."""
        pass

    @abstractmethod
    async def bucket_delete(self, bucket: str) -> int:
        """Delete the whole bucket. Returns the number of keys removed."""
        pass

    async def delete_fields_with_prefix(self, bucket: str, prefix: str) -> List[int]:
        """
        Delete every field whose name starts with prefix.

        Scan-then-delete: fields written while the scan runs may be missed.
        Stores with an atomic alternative should override this.

        Returns:
            One deletion result per matching field
        """
        fields = await self.hash_get_all(bucket)
        results = []
        for field in fields:
            if field.startswith(prefix):
                results.append(await self.hash_field_delete(bucket, field))
        return results
