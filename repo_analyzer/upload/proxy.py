"""Tier 2: hand the report to a proxy service that writes to the store for us."""

from __future__ import annotations

import http.client
import json
import ssl
from typing import Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

import certifi

from ..config import UploadConfig
from ..logging import get_logger
from .base import DeliveryError, DeliveryRequest

Opener = Callable[..., object]


def ssl_context(ca_bundle_path: Optional[str] = None) -> ssl.SSLContext:
    return ssl.create_default_context(cafile=ca_bundle_path or certifi.where())


class ProxyDelivery:
    """POSTs report bytes to the proxy endpoint and reads back the public URL."""

    name = "fallback"

    def __init__(self, config: UploadConfig, *, opener: Opener | None = None) -> None:
        self.config = config
        self._opener = opener or urlopen
        self.logger = get_logger("upload.proxy")

    def build_request(self, request: DeliveryRequest) -> Request:
        headers = {
            "Content-Type": request.content_type,
            "X-Content-Id": request.content_id,
            "X-Object-Key": request.key,
            "X-Region": self.config.region,
        }
        if self.config.bucket:
            headers["X-Bucket"] = self.config.bucket
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key
        return Request(self.config.api_url, data=request.data, headers=headers, method="POST")

    def deliver(self, request: DeliveryRequest) -> str:
        try:
            http_request = self.build_request(request)
        except ValueError as exc:
            raise DeliveryError(f"invalid proxy URL {self.config.api_url!r}: {exc}") from exc
        self.logger.debug("Uploading %d bytes via %s", len(request.data), self.config.api_url)
        kwargs: dict[str, object] = {"timeout": self.config.fallback_timeout}
        if self.config.api_url.startswith("https://"):
            kwargs["context"] = ssl_context(self.config.ca_bundle_path)

        try:
            with self._opener(http_request, **kwargs) as response:  # type: ignore[attr-defined]
                raw = response.read()
        except HTTPError as exc:
            detail = ""
            try:
                detail = exc.read().decode("utf-8", errors="replace").strip()
            except OSError:
                detail = ""
            raise DeliveryError(
                f"proxy upload failed with status {exc.code}: {detail[:500] or exc.reason}"
            ) from exc
        except URLError as exc:
            raise DeliveryError(f"proxy upload failed: {exc.reason}") from exc
        except http.client.HTTPException as exc:
            raise DeliveryError(f"proxy upload failed: {type(exc).__name__}: {exc}") from exc
        except (TimeoutError, OSError) as exc:
            raise DeliveryError(f"proxy upload failed: {exc}") from exc

        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DeliveryError("proxy returned invalid JSON") from exc

        url = payload.get("url") if isinstance(payload, dict) else None
        if not isinstance(url, str) or not url.strip():
            raise DeliveryError("invalid response from proxy: missing URL")
        return url.strip()


__all__ = ["ProxyDelivery", "ssl_context"]
