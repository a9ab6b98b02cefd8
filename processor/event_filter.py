"""Filtering and ranking of parsed feed events."""
import logging
import random
from datetime import datetime, timezone
from typing import Callable, List, Optional

from processor.date_normalizer import calendar_date, to_datetime
from processor.models import (
    DEFAULT_SUMMARY,
    CandidateEvent,
    EventTime,
    NormalizedEvent,
)

logger = logging.getLogger(__name__)


def random_event_id() -> str:
    """
    Fallback id for events without a UID.

    Best-effort only: ids are random per call and never checked for
    collisions, so they are not stable across fetches of the same feed.
    """
    return str(random.random())


class EventFilter:
    """Selects the soonest upcoming events from a parsed feed."""

    MAX_EVENTS = 10

    def __init__(self, id_factory: Callable[[], str] = random_event_id):
        """
        Initialize the filter.

        Args:
            id_factory: Generator for ids of events that carry no UID
        """
        self.id_factory = id_factory

    def select_upcoming(
        self,
        candidates: List[CandidateEvent],
        now: Optional[datetime] = None
    ) -> List[NormalizedEvent]:
        """
        Keep future and same-day events, soonest first, capped at MAX_EVENTS.

        An event qualifies when it starts after ``now`` or on the same local
        calendar day as ``now``.

        Args:
            candidates: Complete CandidateEvent objects from the parser
            now: Reference instant (defaults to the current time; naive
                values are read as local time)

        Returns:
            Up to MAX_EVENTS NormalizedEvent objects ordered by start
        """
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            # Naive instants are local wall-clock time
            now = now.astimezone()
        today = now.astimezone().date()

        upcoming = []
        for candidate in candidates:
            start = to_datetime(candidate.start)
            if start > now or start.astimezone().date() == today:
                upcoming.append((start, candidate))

        # Stable sort: ties keep feed order
        upcoming.sort(key=lambda pair: pair[0])
        selected = upcoming[:self.MAX_EVENTS]

        logger.info(
            f"Selected {len(selected)} of {len(upcoming)} upcoming events "
            f"from {len(candidates)} parsed events"
        )
        return [self._normalize(candidate) for _, candidate in selected]

    def _normalize(self, candidate: CandidateEvent) -> NormalizedEvent:
        return NormalizedEvent(
            id=candidate.uid or self.id_factory(),
            summary=candidate.summary or DEFAULT_SUMMARY,
            start=EventTime(
                date_time=candidate.start,
                date=calendar_date(candidate.start)
            ),
            end=EventTime(
                date_time=candidate.end,
                date=calendar_date(candidate.end)
            ),
            location=candidate.location,
            description=candidate.description,
        )
