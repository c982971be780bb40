"""Two-tier report delivery modelled as a small closed state machine."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..config import UploadConfig
from ..errors import UploadFailedError
from ..logging import get_logger
from .base import Delivery, DeliveryError, DeliveryRequest, content_id_for, object_key
from .proxy import ProxyDelivery
from .s3 import S3Delivery


class DeliveryState(str, Enum):
    NOT_ATTEMPTED = "not_attempted"
    DIRECT_ATTEMPTED = "direct_attempted"
    DIRECT_SUCCEEDED = "direct_succeeded"
    FALLBACK_ATTEMPTED = "fallback_attempted"
    FALLBACK_SUCCEEDED = "fallback_succeeded"
    FAILED = "failed"


_TRANSITIONS: Dict[DeliveryState, FrozenSet[DeliveryState]] = {
    DeliveryState.NOT_ATTEMPTED: frozenset(
        {DeliveryState.DIRECT_ATTEMPTED, DeliveryState.FALLBACK_ATTEMPTED}
    ),
    DeliveryState.DIRECT_ATTEMPTED: frozenset(
        {DeliveryState.DIRECT_SUCCEEDED, DeliveryState.FALLBACK_ATTEMPTED}
    ),
    DeliveryState.FALLBACK_ATTEMPTED: frozenset(
        {DeliveryState.FALLBACK_SUCCEEDED, DeliveryState.FAILED}
    ),
}

TERMINAL_STATES = frozenset(
    {DeliveryState.DIRECT_SUCCEEDED, DeliveryState.FALLBACK_SUCCEEDED, DeliveryState.FAILED}
)


@dataclass(frozen=True)
class Transition:
    """One recorded edge of the delivery state machine."""

    source: DeliveryState
    target: DeliveryState
    reason: str


@dataclass(frozen=True)
class UploadOutcome:
    """Terminal result of one delivery run."""

    state: DeliveryState
    content_id: str
    key: str
    url: Optional[str] = None
    transitions: Tuple[Transition, ...] = ()
    errors: Tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.url is not None

    @property
    def error(self) -> Optional[UploadFailedError]:
        if self.state is not DeliveryState.FAILED:
            return None
        detail = "; ".join(self.errors) or "no delivery tier succeeded"
        return UploadFailedError(f"Report upload failed: {detail}")


@dataclass
class _Run:
    request: DeliveryRequest
    state: DeliveryState = DeliveryState.NOT_ATTEMPTED
    url: Optional[str] = None
    transitions: List[Transition] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def advance(self, target: DeliveryState, reason: str) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if target not in allowed:
            raise RuntimeError(f"illegal delivery transition {self.state.value} -> {target.value}")
        self.transitions.append(Transition(self.state, target, reason))
        self.state = target


class Uploader:
    """Delivers rendered reports: direct object-store first, proxy on any failure."""

    def __init__(
        self,
        config: UploadConfig,
        *,
        direct: Delivery | None = None,
        fallback: Delivery | None = None,
    ) -> None:
        self.config = config
        self.direct = direct or S3Delivery(config)
        self.fallback = fallback or ProxyDelivery(config)
        self.logger = get_logger("upload")
        self._completed: Dict[str, UploadOutcome] = {}
        self._lock = threading.Lock()

    def upload(
        self,
        data: bytes,
        *,
        extension: str = "json",
        content_type: str = "application/json",
        content_id: str | None = None,
    ) -> UploadOutcome:
        """Run the delivery state machine for ``data`` and return its outcome."""
        cid = content_id or content_id_for(data)
        key = object_key(self.config.key_prefix, cid, extension)

        with self._lock:
            previous = self._completed.get(key)
            if previous is not None:
                self.logger.debug("Content %s already delivered to %s", cid, previous.url)
                return previous

            run = _Run(DeliveryRequest(data=data, content_id=cid, key=key, content_type=content_type))
            while run.state not in TERMINAL_STATES:
                self._step(run)

            outcome = UploadOutcome(
                state=run.state,
                content_id=cid,
                key=key,
                url=run.url,
                transitions=tuple(run.transitions),
                errors=tuple(run.errors),
            )
            if outcome.succeeded:
                self._completed[key] = outcome
                self.logger.info("Report available at %s", outcome.url)
            else:
                self.logger.warning("Report upload failed; keeping local output only")
            return outcome

    def _step(self, run: _Run) -> None:
        if run.state is DeliveryState.NOT_ATTEMPTED:
            if self.config.credentials_well_formed():
                run.advance(DeliveryState.DIRECT_ATTEMPTED, "credentials present")
            elif self.config.has_credentials:
                run.errors.append("direct: credentials are malformed or bucket is missing")
                run.advance(DeliveryState.FALLBACK_ATTEMPTED, "credentials malformed")
            else:
                run.advance(DeliveryState.FALLBACK_ATTEMPTED, "credentials absent")
        elif run.state is DeliveryState.DIRECT_ATTEMPTED:
            run.url = self._attempt(self.direct, run)
            if run.url is not None:
                run.advance(DeliveryState.DIRECT_SUCCEEDED, "direct upload stored")
            else:
                run.advance(DeliveryState.FALLBACK_ATTEMPTED, "direct upload failed")
        elif run.state is DeliveryState.FALLBACK_ATTEMPTED:
            run.url = self._attempt(self.fallback, run)
            if run.url is not None:
                run.advance(DeliveryState.FALLBACK_SUCCEEDED, "proxy upload stored")
            else:
                run.advance(DeliveryState.FAILED, "proxy upload failed")

    def _attempt(self, tier: Delivery, run: _Run) -> Optional[str]:
        try:
            return tier.deliver(run.request)
        except DeliveryError as exc:
            self.logger.info("%s upload failed: %s", tier.name, exc)
            run.errors.append(f"{tier.name}: {exc}")
            return None
        except Exception as exc:
            self.logger.warning("%s upload raised unexpectedly: %s", tier.name, exc, exc_info=True)
            run.errors.append(f"{tier.name}: {type(exc).__name__}: {exc}")
            return None


__all__ = [
    "DeliveryState",
    "TERMINAL_STATES",
    "Transition",
    "UploadOutcome",
    "Uploader",
]
