"""Fetcher for remote iCalendar (.ics) feeds."""
import logging
import time
from datetime import datetime
from typing import List, Optional

import requests

from processor.event_filter import EventFilter
from processor.ical_parser import IcalParser
from processor.models import NormalizedEvent

logger = logging.getLogger(__name__)


class FeedDecodeError(ValueError):
    """Raised when a feed body is binary rather than text."""


class IcalFeedFetcher:
    """Fetches an iCalendar feed and returns its upcoming events."""

    def __init__(self, timeout: int = 30, max_retries: int = 1):
        """
        Initialize the feed fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Total fetch attempts; 1 means no retry (default: 1)
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.parser = IcalParser()

    def fetch_and_parse(
        self,
        url: str,
        now: Optional[datetime] = None,
        event_filter: Optional[EventFilter] = None
    ) -> List[NormalizedEvent]:
        """
        Fetch a feed and return its soonest upcoming events.

        Malformed events are skipped. Only transport problems raise.

        Args:
            url: Feed URL (http, https or webcal)
            now: Reference instant for the upcoming-event filter
            event_filter: Filter to use (default: a new EventFilter)

        Returns:
            Up to EventFilter.MAX_EVENTS NormalizedEvent objects

        Raises:
            requests.RequestException: If the fetch fails or returns non-2xx
            FeedDecodeError: If the body is binary rather than text
        """
        feed_text = self.fetch_feed(url)
        candidates = self.parser.parse_events(feed_text)
        if event_filter is None:
            event_filter = EventFilter()
        return event_filter.select_upcoming(candidates, now=now)

    def fetch_feed(self, url: str) -> str:
        """
        Fetch raw feed text with optional retry logic.

        Args:
            url: Feed URL

        Returns:
            Decoded feed text

        Raises:
            requests.RequestException: If all attempts fail
            FeedDecodeError: If the body is binary rather than text
        """
        url = self._normalize_url(url)
        base_delay = 1  # seconds

        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"Fetching iCal feed (attempt {attempt + 1}/{self.max_retries})"
                )
                response = requests.get(url, timeout=self.timeout)
                response.raise_for_status()
                break

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    # Calculate exponential backoff delay
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"Failed to fetch iCal feed after {self.max_retries} "
                        f"attempt(s). Last error: {e}"
                    )
                    raise

        feed_text = self._decode_body(response.content)
        logger.info(f"iCal data received, length: {len(feed_text)}")
        return feed_text

    def _normalize_url(self, url: str) -> str:
        # Subscription links are often handed out as webcal://
        if url.lower().startswith('webcal://'):
            return 'https://' + url[len('webcal://'):]
        return url

    def _decode_body(self, body: bytes) -> str:
        """
        Decode a response body as UTF-8, ignoring the declared charset.

        Invalid byte sequences are replaced with U+FFFD so a feed saved in
        another encoding still yields its events.

        Args:
            body: Raw response bytes

        Returns:
            Feed text with any byte-order mark removed

        Raises:
            FeedDecodeError: If the body is binary rather than text
        """
        if b'\x00' in body:
            raise FeedDecodeError('Feed body contains NUL bytes, not calendar text')
        return body.decode('utf-8-sig', errors='replace')


def fetch_and_parse(url: str, timeout: int = 30) -> List[NormalizedEvent]:
    """Fetch ``url`` and return its upcoming events using default settings."""
    return IcalFeedFetcher(timeout=timeout).fetch_and_parse(url)
