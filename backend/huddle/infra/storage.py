"""Object storage boundary for activity images.

The domain only ever sees opaque references. The default backend keeps blobs
in process memory; deployments swap in a real bucket client via
``set_storage`` at startup.
"""

from __future__ import annotations

import asyncio
import mimetypes
from typing import Dict, Optional, Protocol, Tuple

import ulid

from huddle.settings import settings


class StorageError(Exception):
	"""Raised by storage backends when an object cannot be written or removed."""


class ObjectStorage(Protocol):
	async def put(self, data: bytes, *, content_type: str, prefix: str) -> str: ...

	async def remove(self, ref: str) -> None: ...

	def public_url(self, ref: str) -> Optional[str]: ...


def generate_key(prefix: str, content_type: str) -> str:
	ext = mimetypes.guess_extension(content_type) or ".bin"
	return f"{prefix.strip('/')}/{ulid.new()}{ext}"


class InMemoryObjectStorage:
	def __init__(self, bucket: str | None = None) -> None:
		self.bucket = bucket or settings.image_bucket
		self._lock = asyncio.Lock()
		self._objects: Dict[str, Tuple[bytes, str]] = {}

	async def put(self, data: bytes, *, content_type: str, prefix: str) -> str:
		if not data:
			raise StorageError("empty_object")
		key = generate_key(prefix, content_type)
		async with self._lock:
			self._objects[key] = (bytes(data), content_type)
		return key

	async def remove(self, ref: str) -> None:
		async with self._lock:
			if self._objects.pop(ref, None) is None:
				raise StorageError(f"missing_object:{ref}")

	async def exists(self, ref: str) -> bool:
		async with self._lock:
			return ref in self._objects

	def public_url(self, ref: str) -> Optional[str]:
		base = settings.image_public_base_url
		if not base:
			return None
		return f"{base.rstrip('/')}/{self.bucket}/{ref}"


_storage: ObjectStorage = InMemoryObjectStorage()


def get_storage() -> ObjectStorage:
	return _storage


def set_storage(storage: ObjectStorage) -> None:
	global _storage
	_storage = storage
