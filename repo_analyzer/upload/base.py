"""Shared request type and contract for delivery tiers."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Protocol


class DeliveryError(RuntimeError):
    """A single delivery tier could not place the report."""


@dataclass(frozen=True)
class DeliveryRequest:
    """Bytes to deliver plus the stable identifiers derived from them."""

    data: bytes
    content_id: str
    key: str
    content_type: str


class Delivery(Protocol):
    """One tier of the upload pipeline."""

    name: str

    def deliver(self, request: DeliveryRequest) -> str:
        """Store ``request.data`` and return its public URL, or raise DeliveryError."""


def content_id_for(data: bytes) -> str:
    """Stable content identifier: the SHA-256 hex digest of the bytes."""
    return hashlib.sha256(data).hexdigest()


def object_key(prefix: str, content_id: str, extension: str) -> str:
    prefix = prefix.strip("/")
    name = f"{content_id}.{extension}" if extension else content_id
    return f"{prefix}/{name}" if prefix else name


__all__ = ["Delivery", "DeliveryError", "DeliveryRequest", "content_id_for", "object_key"]
