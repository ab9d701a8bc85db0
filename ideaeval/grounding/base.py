from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from ideaeval.core.schemas import GroundingEnvelope, GroundingUnavailable
from ideaeval.core.utils import utc_now


class BaseGroundingFetcher(ABC):
    """One external data source, wrapped so failures become sentinels."""

    source: str
    ttl_hours: float = 24.0

    @abstractmethod
    def fetch_payload(self) -> dict:
        raise NotImplementedError

    def envelope(self, payload: dict, fetched_at: datetime | None = None) -> GroundingEnvelope:
        return GroundingEnvelope(
            payload=payload,
            source=self.source,
            fetched_at=fetched_at or utc_now(),
            ttl_hours=self.ttl_hours,
        )

    def fetch(self) -> GroundingEnvelope | GroundingUnavailable:
        try:
            payload = self.fetch_payload()
        except Exception as exc:
            return GroundingUnavailable(source=self.source, reason=str(exc) or type(exc).__name__)
        return self.envelope(payload)
