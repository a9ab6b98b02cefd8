"""Unit tests for IcalFeedFetcher."""
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import responses
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout

from scraper.ical_feed import FeedDecodeError, IcalFeedFetcher, fetch_and_parse


FEED_URL = "https://league.example.com/team/123/calendar.ics"
NOW = datetime(2025, 8, 5, 12, 0, 0, tzinfo=timezone.utc)

SAMPLE_FEED = """BEGIN:VCALENDAR\r
VERSION:2.0\r
PRODID:-//League Scheduler//EN\r
BEGIN:VEVENT\r
UID:game-1@league.example.com\r
SUMMARY:Game vs Hawks\r
LOCATION:Riverside Park\r
DTSTART:20250806T100000Z\r
DTEND:20250806T113000Z\r
END:VEVENT\r
BEGIN:VEVENT\r
UID:game-0@league.example.com\r
SUMMARY:Season Opener\r
DTSTART:20250101T100000Z\r
DTEND:20250101T113000Z\r
END:VEVENT\r
BEGIN:VEVENT\r
UID:picnic@league.example.com\r
DTSTART;VALUE=DATE:20250810\r
DTEND;VALUE=DATE:20250811\r
END:VEVENT\r
END:VCALENDAR\r
"""


class TestIcalFeedFetcher:
    """Test cases for IcalFeedFetcher class."""

    @responses.activate
    def test_fetch_and_parse_success(self):
        """Test fetching, parsing and filtering a feed."""
        responses.add(responses.GET, FEED_URL, body=SAMPLE_FEED, status=200)

        fetcher = IcalFeedFetcher(timeout=30)
        events = fetcher.fetch_and_parse(FEED_URL, now=NOW)

        assert [e.id for e in events] == [
            "game-1@league.example.com",
            "picnic@league.example.com",
        ]
        assert events[0].summary == "Game vs Hawks"
        assert events[0].location == "Riverside Park"
        assert events[0].start.date_time == "2025-08-06T10:00:00.000Z"
        assert events[1].summary == "No Title"
        assert events[1].start.date == "2025-08-10"
        assert len(responses.calls) == 1

    @responses.activate
    def test_non_success_status_raises(self):
        """Test that a non-2xx response fails the call."""
        responses.add(responses.GET, FEED_URL, body="Not Found", status=404)

        with pytest.raises(HTTPError):
            IcalFeedFetcher().fetch_and_parse(FEED_URL, now=NOW)

        assert len(responses.calls) == 1

    @responses.activate
    def test_timeout_raises_without_retry(self):
        """Test that a timeout fails like any transport error."""
        responses.add(responses.GET, FEED_URL, body=Timeout("Request timed out"))

        with pytest.raises(Timeout):
            IcalFeedFetcher(timeout=5).fetch_and_parse(FEED_URL)

        assert len(responses.calls) == 1

    @responses.activate
    @patch('scraper.ical_feed.time.sleep')
    def test_retry_succeeds_after_failures(self, mock_sleep):
        """Test configured retries with exponential backoff."""
        responses.add(responses.GET, FEED_URL, body="Server Error", status=500)
        responses.add(responses.GET, FEED_URL, body=ConnectionError("reset"))
        responses.add(responses.GET, FEED_URL, body=SAMPLE_FEED, status=200)

        fetcher = IcalFeedFetcher(timeout=30, max_retries=3)
        events = fetcher.fetch_and_parse(FEED_URL, now=NOW)

        assert len(events) == 2
        assert len(responses.calls) == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]

    @responses.activate
    @patch('scraper.ical_feed.time.sleep')
    def test_all_retries_fail(self, mock_sleep):
        """Test that the last error is raised when every attempt fails."""
        for _ in range(3):
            responses.add(responses.GET, FEED_URL, body="Server Error", status=503)

        fetcher = IcalFeedFetcher(max_retries=3)

        with pytest.raises(RequestException):
            fetcher.fetch_feed(FEED_URL)

        assert len(responses.calls) == 3

    @responses.activate
    def test_cp1252_feed_still_yields_events(self):
        """Test that invalid UTF-8 bytes are replaced, not fatal."""
        feed = (
            "BEGIN:VCALENDAR\r\n"
            "BEGIN:VEVENT\r\n"
            "UID:cafe@league.example.com\r\n"
            "SUMMARY:Café Night\r\n"
            "DTSTART:20250806T180000Z\r\n"
            "DTEND:20250806T200000Z\r\n"
            "END:VEVENT\r\n"
            "END:VCALENDAR\r\n"
        )
        responses.add(responses.GET, FEED_URL, body=feed.encode('cp1252'), status=200)

        events = IcalFeedFetcher().fetch_and_parse(FEED_URL, now=NOW)

        assert len(events) == 1
        assert events[0].id == "cafe@league.example.com"
        assert events[0].summary == "Caf\ufffd Night"

    @responses.activate
    def test_binary_body_raises_decode_error(self):
        """Test that a body with NUL bytes fails the call."""
        responses.add(
            responses.GET,
            FEED_URL,
            body=b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR",
            status=200
        )

        with pytest.raises(FeedDecodeError):
            IcalFeedFetcher().fetch_feed(FEED_URL)

    @responses.activate
    def test_declared_charset_ignored(self):
        """Test that bodies are read as UTF-8 whatever the header says."""
        body = "SUMMARY:Café Night\r\n".encode('utf-8')
        responses.add(
            responses.GET,
            FEED_URL,
            body=body,
            status=200,
            content_type="text/calendar; charset=iso-8859-1"
        )

        assert IcalFeedFetcher().fetch_feed(FEED_URL) == "SUMMARY:Café Night\r\n"

    @responses.activate
    def test_byte_order_mark_stripped(self):
        """Test that a UTF-8 BOM does not hide the first line."""
        responses.add(
            responses.GET,
            FEED_URL,
            body=b"\xef\xbb\xbf" + SAMPLE_FEED.encode('utf-8'),
            status=200
        )

        feed_text = IcalFeedFetcher().fetch_feed(FEED_URL)

        assert feed_text.startswith("BEGIN:VCALENDAR")

    @responses.activate
    def test_webcal_url_fetched_over_https(self):
        """Test that webcal:// subscription links are supported."""
        responses.add(responses.GET, FEED_URL, body=SAMPLE_FEED, status=200)

        feed_text = IcalFeedFetcher().fetch_feed(
            "webcal://league.example.com/team/123/calendar.ics"
        )

        assert "BEGIN:VCALENDAR" in feed_text
        assert responses.calls[0].request.url == FEED_URL

    @responses.activate
    def test_malformed_feed_returns_empty_list(self):
        """Test that garbage text degrades to no events, not an error."""
        responses.add(
            responses.GET,
            FEED_URL,
            body="<html><body>Calendar moved</body></html>",
            status=200
        )

        assert IcalFeedFetcher().fetch_and_parse(FEED_URL, now=NOW) == []

    def test_max_retries_at_least_one(self):
        """Test that non-positive retry counts still make one attempt."""
        assert IcalFeedFetcher(max_retries=0).max_retries == 1

    @responses.activate
    def test_module_level_fetch_and_parse(self):
        """Test the convenience entry point."""
        responses.add(responses.GET, FEED_URL, body=SAMPLE_FEED, status=200)

        events = fetch_and_parse(FEED_URL)

        assert isinstance(events, list)
        assert len(events) <= 10
