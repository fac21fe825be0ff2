"""Deduplication index with a monotonic timestamp watermark."""

from __future__ import annotations


class WatermarkTracker:
    """Tracks delivered message ids and the newest delivered timestamp.

    A message is admitted only if its timestamp is above the watermark
    *floor* and its id has not been seen.  Pollers pass the watermark
    captured at the start of a tick as the floor, so every conversation in
    one tick is compared against the same bound.

    Parameters
    ----------
    horizon_ms:
        Ids whose timestamp lies more than *horizon_ms* below the watermark
        are pruned by :meth:`prune`.  They can never be admitted again, so
        pruning does not weaken deduplication.  ``None`` keeps every id for
        the lifetime of the session.
    """

    def __init__(self, horizon_ms: int | None = None) -> None:
        self._horizon_ms = horizon_ms
        self._seen: dict[str, int] = {}
        self._watermark = 0

    @property
    def watermark(self) -> int:
        return self._watermark

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def is_new(self, message_id: str, sent_at_ms: int, floor: int | None = None) -> bool:
        bound = self._watermark if floor is None else floor
        return sent_at_ms > bound and message_id not in self._seen

    def admit(self, message_id: str, sent_at_ms: int, floor: int | None = None) -> bool:
        """Record the message if new; return whether it was admitted."""
        if not self.is_new(message_id, sent_at_ms, floor):
            return False
        self._seen[message_id] = sent_at_ms
        if sent_at_ms > self._watermark:
            self._watermark = sent_at_ms
        return True

    def prune(self) -> int:
        """Drop ids older than the horizon; return how many were dropped."""
        if self._horizon_ms is None:
            return 0
        cutoff = self._watermark - self._horizon_ms
        stale = [mid for mid, ts in self._seen.items() if ts < cutoff]
        for mid in stale:
            del self._seen[mid]
        return len(stale)

    def reset(self) -> None:
        self._seen.clear()
        self._watermark = 0
