"""Line-oriented tokenizer and event builder for iCalendar feeds."""
import logging
import re
from typing import Iterator, List, Optional

from processor.date_normalizer import parse_ical_date
from processor.models import CandidateEvent, FeedProperty, PropertyLine

logger = logging.getLogger(__name__)

BEGIN_EVENT = 'BEGIN:VEVENT'
END_EVENT = 'END:VEVENT'

# Key (with optional ;params) up to the first colon, then the value
PROPERTY_PATTERN = re.compile(r'^([^:]+):(.*)$')


class IcalParser:
    """
    Parser turning raw feed text into complete candidate events.

    Only flat VEVENT blocks are understood. Folded (continuation) lines are
    not joined back onto the property they continue; each one is handled as
    a separate line and usually ignored.
    """

    def parse_events(self, feed_text: str) -> List[CandidateEvent]:
        """
        Extract every VEVENT block that has both a start and an end.

        Args:
            feed_text: Raw calendar document

        Returns:
            List of CandidateEvent objects in feed order
        """
        events = []
        current: Optional[CandidateEvent] = None
        block_count = 0

        for line in self.iter_lines(feed_text):
            if line == BEGIN_EVENT:
                # An unfinished block is abandoned
                current = CandidateEvent()
                block_count += 1
            elif line == END_EVENT:
                if current is None:
                    continue
                if current.is_complete:
                    events.append(current)
                else:
                    logger.debug(
                        f"Dropping event '{current.summary}': "
                        f"missing or invalid DTSTART/DTEND"
                    )
                current = None
            elif current is not None:
                prop_line = self.parse_property_line(line)
                if prop_line:
                    self._apply_property(current, prop_line)

        logger.debug(
            f"Found {block_count} VEVENT blocks, {len(events)} with valid dates"
        )
        return events

    def iter_lines(self, feed_text: str) -> Iterator[str]:
        """
        Yield each line of the feed with surrounding whitespace removed.

        Only LF separates lines; the CR of CRLF is removed by strip().
        """
        for line in feed_text.split('\n'):
            yield line.strip()

    def parse_property_line(self, line: str) -> Optional[PropertyLine]:
        """
        Split a content line into key, parameters and value.

        Args:
            line: Trimmed content line (e.g. "DTSTART;VALUE=DATE:20250805")

        Returns:
            PropertyLine or None if the line has no colon
        """
        match = PROPERTY_PATTERN.match(line)
        if not match:
            return None

        key, _, params = match.group(1).partition(';')
        return PropertyLine(key=key, params=params, value=match.group(2))

    def _apply_property(self, event: CandidateEvent, prop_line: PropertyLine) -> None:
        prop = FeedProperty.lookup(prop_line.key)
        if prop is None:
            return

        if prop.is_date:
            event.apply(prop, parse_ical_date(prop_line.value))
        else:
            event.apply(prop, prop_line.value)
