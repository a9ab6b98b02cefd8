"""AWS Lambda handler for iCal feed import and sync."""
import json
import logging
import time
from typing import Dict, Any, Optional

import requests

from config import AppConfig, load_config
from processor.models import ICAL_SOURCE
from scraper.ical_feed import FeedDecodeError, IcalFeedFetcher
from storage.calendar_store import CalendarStore


logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (requests.RequestException, FeedDecodeError)


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def initialize(config: Optional[AppConfig] = None) -> AppConfig:
    """
    Load configuration and set up logging for one invocation.

    Args:
        config: Preloaded configuration (default: read from environment)

    Returns:
        The active AppConfig
    """
    if config is None:
        config = load_config()
    setup_logging(config.log_level)
    return config


def _response(status_code: int, body: Dict[str, Any], start_time: float) -> Dict[str, Any]:
    body['duration_seconds'] = round(time.time() - start_time, 2)
    return {
        'statusCode': status_code,
        'body': json.dumps(body)
    }


def _error_body(message: str, error: Exception) -> Dict[str, Any]:
    return {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for iCal feed actions.

    Supported actions:
        preview: {"url"} -> upcoming events of the feed
        import:  {"url", "user_id", "name"?} -> store the feed as a calendar
        sync:    {"calendar_id"} -> refresh a stored calendar from its feed
        deactivate: {"calendar_id"} -> soft delete a stored calendar

    Args:
        event: Invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    config = initialize()

    start_time = time.time()
    event = event or {}
    action = event.get('action', 'preview')
    logger.info(
        f"Lambda execution started",
        extra={'action': action, 'timeout_seconds': config.timeout_seconds}
    )

    fetcher = IcalFeedFetcher(
        timeout=config.timeout_seconds,
        max_retries=config.max_retries
    )

    try:
        if action == 'preview':
            return _handle_preview(event, fetcher, start_time)
        if action == 'import':
            store = CalendarStore(table_name=config.table_name)
            return _handle_import(event, fetcher, store, start_time)
        if action == 'sync':
            store = CalendarStore(table_name=config.table_name)
            return _handle_sync(event, fetcher, store, start_time)
        if action == 'deactivate':
            store = CalendarStore(table_name=config.table_name)
            return _handle_deactivate(event, store, start_time)

        logger.warning(f"Unknown action: {action}")
        return _response(400, {'message': f"Unknown action: {action}"}, start_time)

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, _error_body('Request failed', e), start_time)


def _missing(event: Dict[str, Any], *names: str) -> Optional[str]:
    for name in names:
        if not event.get(name):
            return name
    return None


def _handle_preview(event, fetcher: IcalFeedFetcher, start_time: float) -> Dict[str, Any]:
    missing = _missing(event, 'url')
    if missing:
        return _response(400, {'message': f"Missing parameter: {missing}"}, start_time)

    try:
        logger.info("Fetching events from iCal feed")
        events = fetcher.fetch_and_parse(event['url'])
    except TRANSPORT_ERRORS as e:
        logger.error(
            f"Failed to fetch iCal feed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, _error_body('Could not load calendar', e), start_time)

    logger.info(f"Returning {len(events)} upcoming events")
    return _response(200, {
        'message': 'Feed parsed successfully',
        'event_count': len(events),
        'events': [e.to_dict() for e in events]
    }, start_time)


def _handle_import(
    event,
    fetcher: IcalFeedFetcher,
    store: CalendarStore,
    start_time: float
) -> Dict[str, Any]:
    missing = _missing(event, 'url', 'user_id')
    if missing:
        return _response(400, {'message': f"Missing parameter: {missing}"}, start_time)

    try:
        logger.info("Fetching events from iCal feed")
        events = fetcher.fetch_and_parse(event['url'])
    except TRANSPORT_ERRORS as e:
        logger.error(
            f"Failed to fetch iCal feed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, _error_body('Could not load calendar', e), start_time)

    try:
        logger.info("Saving calendar document")
        document = store.save_calendar(
            user_id=event['user_id'],
            url=event['url'],
            events=events,
            name=event.get('name')
        )
    except Exception as e:
        logger.error(
            f"Error saving calendar document: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, _error_body('Failed to save calendar', e), start_time)

    logger.info(
        f"Lambda execution completed successfully",
        extra={'calendar_id': document['calendar_id'], 'event_count': len(events)}
    )
    return _response(200, {
        'message': 'Calendar imported successfully',
        'calendar_id': document['calendar_id'],
        'event_count': len(events)
    }, start_time)


def _handle_sync(
    event,
    fetcher: IcalFeedFetcher,
    store: CalendarStore,
    start_time: float
) -> Dict[str, Any]:
    missing = _missing(event, 'calendar_id')
    if missing:
        return _response(400, {'message': f"Missing parameter: {missing}"}, start_time)

    calendar_id = event['calendar_id']
    try:
        calendar = store.get_calendar(calendar_id)
    except Exception as e:
        logger.error(
            f"Error loading calendar {calendar_id}: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, _error_body('Failed to load calendar', e), start_time)

    if not calendar or not calendar.get('is_active', True):
        return _response(404, {'message': f"Calendar {calendar_id} not found"}, start_time)

    source = calendar.get('source') or {}
    if source.get('type') != ICAL_SOURCE:
        return _response(
            400,
            {'message': 'Only iCal calendar sync is supported'},
            start_time
        )

    try:
        logger.info(f"Syncing calendar: {calendar_id}")
        events = fetcher.fetch_and_parse(source['address'])
    except TRANSPORT_ERRORS as e:
        logger.error(
            f"Error syncing calendar {calendar_id}: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        store.mark_sync_error(calendar_id, str(e))
        body = _error_body('Could not load calendar', e)
        body['note'] = 'Previous events remain stored'
        return _response(500, body, start_time)

    try:
        result = store.update_events(calendar_id, events)
    except Exception as e:
        logger.error(
            f"Error updating calendar {calendar_id}: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, _error_body('Failed to save calendar', e), start_time)

    return _response(200, {
        'message': 'Sync completed successfully',
        'calendar_id': result.calendar_id,
        'event_count': result.event_count,
        'sync_status': result.status
    }, start_time)


def _handle_deactivate(event, store: CalendarStore, start_time: float) -> Dict[str, Any]:
    missing = _missing(event, 'calendar_id')
    if missing:
        return _response(400, {'message': f"Missing parameter: {missing}"}, start_time)

    calendar_id = event['calendar_id']
    deactivated = store.deactivate_calendar(calendar_id)
    return _response(200, {
        'message': 'Calendar deactivated' if deactivated else 'Calendar kept active',
        'calendar_id': calendar_id,
        'deactivated': deactivated
    }, start_time)
