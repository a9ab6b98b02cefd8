"""Data models for iCalendar feed processing."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


ICAL_SOURCE = 'ical'
DEFAULT_SUMMARY = 'No Title'


class FeedProperty(str, Enum):
    """Property keys recognized inside a VEVENT block."""
    SUMMARY = 'SUMMARY'
    UID = 'UID'
    LOCATION = 'LOCATION'
    DESCRIPTION = 'DESCRIPTION'
    DTSTART = 'DTSTART'
    DTEND = 'DTEND'

    @property
    def is_date(self) -> bool:
        return self in (FeedProperty.DTSTART, FeedProperty.DTEND)

    @classmethod
    def lookup(cls, key: str) -> Optional['FeedProperty']:
        """Return the member for an exact key, or None for unknown keys."""
        try:
            return cls(key)
        except ValueError:
            return None


# Accumulator field populated by each recognized property
PROPERTY_FIELDS = {
    FeedProperty.SUMMARY: 'summary',
    FeedProperty.UID: 'uid',
    FeedProperty.LOCATION: 'location',
    FeedProperty.DESCRIPTION: 'description',
    FeedProperty.DTSTART: 'start',
    FeedProperty.DTEND: 'end',
}


@dataclass
class PropertyLine:
    """One KEY[;params]:VALUE line from a feed."""
    key: str
    params: str
    value: str


@dataclass
class CandidateEvent:
    """Event fields accumulated between BEGIN:VEVENT and END:VEVENT."""
    uid: Optional[str] = None
    summary: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None

    def apply(self, prop: FeedProperty, value: Optional[str]) -> None:
        """Store a property value, overwriting any earlier one."""
        setattr(self, PROPERTY_FIELDS[prop], value)

    @property
    def is_complete(self) -> bool:
        return self.start is not None and self.end is not None


@dataclass(frozen=True)
class EventTime:
    """Instant plus its calendar-date projection."""
    date_time: str
    date: str

    def to_dict(self) -> Dict[str, str]:
        return {'dateTime': self.date_time, 'date': self.date}


@dataclass(frozen=True)
class NormalizedEvent:
    """Upcoming event emitted from a feed."""
    id: str
    summary: str
    start: EventTime
    end: EventTime
    location: Optional[str] = None
    description: Optional[str] = None
    source: str = ICAL_SOURCE

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize to the external event shape.

        Optional fields that were never set are omitted.
        """
        data = {
            'id': self.id,
            'summary': self.summary,
            'start': self.start.to_dict(),
            'end': self.end.to_dict(),
        }
        if self.location is not None:
            data['location'] = self.location
        if self.description is not None:
            data['description'] = self.description
        data['source'] = self.source
        return data


@dataclass
class SyncResult:
    """Result of refreshing a stored calendar."""
    calendar_id: str
    event_count: int
    status: str
    error: Optional[str] = None
