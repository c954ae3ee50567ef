"""
Typed outcomes of sync and import batches.

Batches never fail silently: every per-item failure is listed with a
human-readable reason.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

# Failure reasons included in the stored batch summary
SUMMARY_REASON_LIMIT = 3


@dataclass
class SyncFailure:
    appointment_id: str
    reason: str
    provider_code: Optional[int] = None


@dataclass
class OutboundSyncResult:
    """Aggregate outcome of one push batch."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    conflicts: int = 0
    total: int = 0
    failures: list[SyncFailure] = field(default_factory=list)
    nothing_to_sync: bool = False

    def record_failure(
        self,
        appointment_id: str,
        reason: str,
        provider_code: Optional[int] = None,
    ) -> None:
        self.failed += 1
        self.failures.append(SyncFailure(appointment_id, reason, provider_code))

    def summary(self) -> Optional[str]:
        """One-line description of the batch failures, or None if none."""
        if not self.failures:
            return None
        reasons = "; ".join(
            f"{failure.appointment_id}: {failure.reason}"
            for failure in self.failures[:SUMMARY_REASON_LIMIT]
        )
        more = len(self.failures) - SUMMARY_REASON_LIMIT
        if more > 0:
            reasons += f" (+{more} more)"
        return f"{self.failed} of {self.total} appointments failed: {reasons}"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ImportFailure:
    event_id: str
    reason: str


@dataclass
class ImportResult:
    """Aggregate outcome of one committed import."""

    calendar_id: str
    fetched: int = 0
    created: int = 0
    updated: int = 0
    cancelled: int = 0
    skipped: int = 0
    failed: int = 0
    conflicts: int = 0
    failures: list[ImportFailure] = field(default_factory=list)
    used_sync_token: bool = False
    full_rescan: bool = False

    def record_failure(self, event_id: str, reason: str) -> None:
        self.failed += 1
        self.failures.append(ImportFailure(event_id, reason))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PreviewItem:
    event_id: str
    classification: str
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    all_day: bool = False
    status: str = "confirmed"


@dataclass
class ImportPreview:
    """What a commit over the same window would do; nothing is written."""

    calendar_id: str
    items: list[PreviewItem] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for item in self.items:
            counts[item.classification] = counts.get(item.classification, 0) + 1
        return counts
