"""Report delivery: direct object-store upload with proxy fallback."""

from .base import Delivery, DeliveryError, DeliveryRequest, content_id_for, object_key
from .proxy import ProxyDelivery
from .s3 import S3Delivery, public_url
from .uploader import DeliveryState, Transition, UploadOutcome, Uploader

__all__ = [
    "Delivery",
    "DeliveryError",
    "DeliveryRequest",
    "DeliveryState",
    "ProxyDelivery",
    "S3Delivery",
    "Transition",
    "UploadOutcome",
    "Uploader",
    "content_id_for",
    "object_key",
    "public_url",
]
