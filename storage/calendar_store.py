"""DynamoDB storage for imported iCal calendar documents."""
import hashlib
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from processor.models import ICAL_SOURCE, NormalizedEvent, SyncResult

logger = logging.getLogger(__name__)

SYNC_SUCCESS = 'success'
SYNC_ERROR = 'error'


class CalendarStore:
    """Manager for calendar documents in DynamoDB."""

    DEFAULT_NAME = 'My iCal Calendar'
    DEFAULT_DESCRIPTION = 'Imported from iCal feed'
    DEFAULT_COLOR = '#34A853'

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized CalendarStore for table: {table_name}")

    @staticmethod
    def build_calendar_id(url: str, user_id: str) -> str:
        """
        Derive a stable calendar id for a user's subscription to a feed.

        Args:
            url: Feed URL
            user_id: Owning user

        Returns:
            Id of the form ``ical-<hash>-<user_id>``
        """
        url_hash = hashlib.sha256(url.encode('utf-8')).hexdigest()[:16]
        return f"ical-{url_hash}-{user_id}"

    def save_calendar(
        self,
        user_id: str,
        url: str,
        events: List[NormalizedEvent],
        name: Optional[str] = None
    ) -> dict:
        """
        Create (or replace) the calendar document for an imported feed.

        Args:
            user_id: Owning user
            url: Feed URL the events came from
            events: Events returned by the feed fetcher
            name: Display name (default: DEFAULT_NAME)

        Returns:
            The stored calendar document
        """
        calendar_id = self.build_calendar_id(url, user_id)
        now = self._timestamp()

        document = {
            'calendar_id': calendar_id,
            'name': name or self.DEFAULT_NAME,
            'description': self.DEFAULT_DESCRIPTION,
            'source': {
                'type': ICAL_SOURCE,
                'address': url,
                'provider': ICAL_SOURCE
            },
            'default_color': self.DEFAULT_COLOR,
            'events': self._events_to_map(events),
            'sync': {
                'last_synced_at': now,
                'sync_status': SYNC_SUCCESS
            },
            'subscribing_groups': [],
            'created_by': user_id,
            'created_at': now,
            'updated_at': now,
            'is_active': True
        }

        try:
            self.table.put_item(Item=document)
        except ClientError as e:
            logger.error(f"Error creating calendar document {calendar_id}: {e}")
            raise

        logger.info(
            f"Calendar document created: {calendar_id} with {len(events)} events"
        )
        return document

    def get_calendar(self, calendar_id: str) -> Optional[dict]:
        """
        Retrieve a calendar document.

        Args:
            calendar_id: Calendar to look up

        Returns:
            Calendar document or None if it does not exist
        """
        try:
            response = self.table.get_item(Key={'calendar_id': calendar_id})
        except ClientError as e:
            logger.error(f"Error getting calendar {calendar_id}: {e}")
            raise

        return response.get('Item')

    def update_events(
        self,
        calendar_id: str,
        events: List[NormalizedEvent]
    ) -> SyncResult:
        """
        Replace a calendar's events after a successful feed refresh.

        Args:
            calendar_id: Calendar to update
            events: Freshly fetched events

        Returns:
            SyncResult describing the refresh
        """
        now = self._timestamp()
        try:
            self.table.update_item(
                Key={'calendar_id': calendar_id},
                UpdateExpression=(
                    'SET #events = :events, '
                    '#sync = :sync, '
                    'updated_at = :now'
                ),
                ExpressionAttributeNames={'#events': 'events', '#sync': 'sync'},
                ExpressionAttributeValues={
                    ':events': self._events_to_map(events),
                    ':sync': {
                        'last_synced_at': now,
                        'sync_status': SYNC_SUCCESS
                    },
                    ':now': now
                }
            )
        except ClientError as e:
            logger.error(f"Error updating events for calendar {calendar_id}: {e}")
            raise

        logger.info(
            f"Calendar {calendar_id} synced successfully with {len(events)} events"
        )
        return SyncResult(
            calendar_id=calendar_id,
            event_count=len(events),
            status=SYNC_SUCCESS
        )

    def mark_sync_error(self, calendar_id: str, message: str) -> SyncResult:
        """
        Record a failed refresh on the calendar document.

        Stored events are left untouched.

        Args:
            calendar_id: Calendar whose refresh failed
            message: Error description

        Returns:
            SyncResult with error status
        """
        now = self._timestamp()
        try:
            self.table.update_item(
                Key={'calendar_id': calendar_id},
                UpdateExpression='SET #sync = :sync, updated_at = :now',
                ExpressionAttributeNames={'#sync': 'sync'},
                ExpressionAttributeValues={
                    ':sync': {
                        'last_synced_at': now,
                        'sync_status': SYNC_ERROR,
                        'error_message': message
                    },
                    ':now': now
                }
            )
        except ClientError as e:
            logger.error(f"Failed to update sync error status for {calendar_id}: {e}")
            raise

        return SyncResult(
            calendar_id=calendar_id,
            event_count=0,
            status=SYNC_ERROR,
            error=message
        )

    def deactivate_calendar(self, calendar_id: str) -> bool:
        """
        Soft delete a calendar that no group subscribes to.

        Args:
            calendar_id: Calendar to deactivate

        Returns:
            True if the calendar was deactivated, False otherwise
        """
        calendar = self.get_calendar(calendar_id)
        if calendar is None:
            logger.warning(f"Calendar {calendar_id} not found")
            return False

        if calendar.get('subscribing_groups'):
            logger.info(
                f"Calendar {calendar_id} still has subscribing groups, "
                f"keeping it active"
            )
            return False

        try:
            self.table.update_item(
                Key={'calendar_id': calendar_id},
                UpdateExpression='SET is_active = :inactive, updated_at = :now',
                ExpressionAttributeValues={
                    ':inactive': False,
                    ':now': self._timestamp()
                }
            )
        except ClientError as e:
            logger.error(f"Error deactivating calendar {calendar_id}: {e}")
            raise

        logger.info(f"Calendar deactivated: {calendar_id}")
        return True

    def _events_to_map(self, events: List[NormalizedEvent]) -> Dict[str, dict]:
        """
        Convert events to a map keyed by event id.

        Events sharing a UID (e.g. recurrence overrides) are keyed as
        ``<id>-<start>``, then ``<id>-<start>-<n>``, so none overwrite another.

        Args:
            events: NormalizedEvent objects

        Returns:
            Dictionary mapping event key to serialized event
        """
        events_map = {}
        for event in events:
            key = event.id
            if key in events_map:
                key = f"{event.id}-{event.start.date_time}"
                suffix = 2
                while key in events_map:
                    key = f"{event.id}-{event.start.date_time}-{suffix}"
                    suffix += 1
            events_map[key] = event.to_dict()
        return events_map

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).isoformat()
