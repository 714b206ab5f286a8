"""DynamoDB manager for event record storage operations."""
import logging
import time
from decimal import Decimal
from typing import Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from processor.models import EventRecord

logger = logging.getLogger(__name__)


class PurgeIncompleteError(Exception):
    """Some stored events could not be deleted."""

    def __init__(self, deleted: List[dict], expected: int):
        super().__init__(f"Deleted {len(deleted)} of {expected} existing events")
        self.deleted = deleted
        self.expected = expected


class DynamoDBManager:
    """Manager for DynamoDB operations on the event record table."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    LOCK_KEY = '#sync-lock'
    RESERVED_PREFIX = '#'

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        self._serializer = TypeSerializer()
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def get_all_events(self) -> Dict[str, EventRecord]:
        """
        Retrieve all event records using Scan operation.

        Returns:
            Dictionary mapping event_id to EventRecord objects
        """
        events = {}
        for item in self._scan_event_items():
            event = self._item_to_record(item)
            if event:
                events[event.event_id] = event

        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def _scan_event_items(self) -> List[dict]:
        """Scan every raw item except reserved ones like the sync lock."""
        logger.info("Scanning DynamoDB table for all events")

        try:
            response = self.table.scan()
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

        return [
            item for item in items
            if not item['event_id'].startswith(self.RESERVED_PREFIX)
        ]

    def list_events(self, limit: int = 20, status: str = 'published') -> List[EventRecord]:
        """
        List records for display, ordered by sort rank then start time.

        Args:
            limit: Maximum number of records to return (default: 20)
            status: Only records with this status are returned

        Returns:
            Ordered list of EventRecord objects
        """
        records = [
            record for record in self.get_all_events().values()
            if record.status == status
        ]
        records.sort(key=lambda record: (record.sort_rank, record.unix_timestamp))
        return records[:max(0, limit)]

    def insert_event(self, record: EventRecord) -> None:
        """Write a single record."""
        self.table.put_item(Item=self._record_to_item(record))

    def delete_all_events(self) -> List[dict]:
        """
        Delete every stored event item, including ones that no longer
        convert to an EventRecord.

        Returns:
            The raw items that were deleted, so their assets can be released

        Raises:
            PurgeIncompleteError: If any batch failed; carries the items
                that were deleted
        """
        existing = self._scan_event_items()
        deleted_ids = set(self.batch_delete_events(
            [item['event_id'] for item in existing]
        ))
        deleted = [item for item in existing if item['event_id'] in deleted_ids]

        if len(deleted) != len(existing):
            logger.error(
                f"Deleted {len(deleted)} of {len(existing)} existing events"
            )
            raise PurgeIncompleteError(deleted, len(existing))
        return deleted

    def storable_records(self, records: List[EventRecord]) -> List[EventRecord]:
        """
        Filter out records DynamoDB would reject when serializing them.

        Args:
            records: Records about to be written

        Returns:
            The records that serialize cleanly, in their original order
        """
        storable = []
        for record in records:
            try:
                self._serializer.serialize(self._record_to_item(record))
            except (TypeError, ValueError, ArithmeticError) as e:
                logger.warning(f"Record {record.event_id} cannot be stored: {e}")
                continue
            storable.append(record)
        return storable

    def batch_write_events(self, records: List[EventRecord]) -> int:
        """
        Write records to DynamoDB in batches of 25 items.

        Args:
            records: List of EventRecord objects to write

        Returns:
            Count of successfully written records
        """
        if not records:
            return 0

        logger.info(f"Writing {len(records)} events to DynamoDB")
        success_count = 0

        for i in range(0, len(records), self.BATCH_SIZE):
            batch = records[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for record in batch:
                        writer.put_item(Item=self._record_to_item(record))
                success_count += len(batch)

            except ClientError as e:
                logger.error(
                    f"Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                # Continue processing remaining batches
                continue

        logger.info(f"Successfully wrote {success_count} events")
        return success_count

    def batch_delete_events(self, event_ids: List[str]) -> List[str]:
        """
        Delete records from DynamoDB in batches of 25 items.

        Args:
            event_ids: List of event IDs to delete

        Returns:
            IDs of the successfully deleted records
        """
        if not event_ids:
            return []

        logger.info(f"Deleting {len(event_ids)} events from DynamoDB")
        deleted = []

        for i in range(0, len(event_ids), self.BATCH_SIZE):
            batch = event_ids[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for event_id in batch:
                        writer.delete_item(Key={'event_id': event_id})
                deleted.extend(batch)

            except ClientError as e:
                logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                continue

        logger.info(f"Successfully deleted {len(deleted)} events")
        return deleted

    def acquire_cycle_lock(self, owner: str, lease_seconds: int) -> bool:
        """
        Take the table-wide sync lease unless another live holder has it.

        Args:
            owner: Identifier of the cycle taking the lease
            lease_seconds: Lease length; an expired lease can be taken over

        Returns:
            True if the lease was acquired
        """
        now = int(time.time())
        try:
            self.table.put_item(
                Item={
                    'event_id': self.LOCK_KEY,
                    'owner': owner,
                    'expires_at': now + lease_seconds
                },
                ConditionExpression=(
                    Attr('event_id').not_exists() | Attr('expires_at').lt(now)
                )
            )
            return True
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                logger.info("Sync lock is held by another cycle")
                return False
            raise

    def release_cycle_lock(self, owner: str) -> None:
        """Drop the sync lease if it is still held by owner."""
        try:
            self.table.delete_item(
                Key={'event_id': self.LOCK_KEY},
                ConditionExpression=Attr('owner').eq(owner)
            )
        except ClientError as e:
            if e.response['Error']['Code'] != 'ConditionalCheckFailedException':
                raise
            logger.warning(f"Sync lock no longer owned by {owner}")

    def _item_to_record(self, item: dict) -> Optional[EventRecord]:
        """
        Convert DynamoDB item to EventRecord object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            EventRecord object or None if conversion fails
        """
        try:
            return EventRecord(
                event_id=item['event_id'],
                title=item['title'],
                status=item['status'],
                address=item.get('address', ''),
                location_name=item.get('location_name', ''),
                is_free=bool(item.get('is_free', False)),
                price_min=item.get('price_min'),
                price_max=item.get('price_max'),
                currency=item.get('currency', ''),
                sort_rank=int(item['sort_rank']),
                start_local=item['start_local'],
                end_local=item.get('end_local'),
                formatted_time_range=item['formatted_time_range'],
                unix_timestamp=int(item['unix_timestamp']),
                url=item.get('url', ''),
                cover_image_ref=item.get('cover_image_ref'),
                last_updated=int(item['last_updated'])
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item to EventRecord: {e}")
            return None

    def _record_to_item(self, record: EventRecord) -> dict:
        """
        Convert EventRecord object to DynamoDB item.

        Args:
            record: EventRecord object

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'event_id': record.event_id,
            'title': record.title,
            'status': record.status,
            'address': record.address,
            'location_name': record.location_name,
            'is_free': record.is_free,
            'currency': record.currency,
            'sort_rank': record.sort_rank,
            'start_local': record.start_local,
            'formatted_time_range': record.formatted_time_range,
            'unix_timestamp': record.unix_timestamp,
            'url': record.url,
            'last_updated': record.last_updated
        }

        # Add optional fields if present
        if record.price_min is not None:
            item['price_min'] = Decimal(record.price_min)
        if record.price_max is not None:
            item['price_max'] = Decimal(record.price_max)
        if record.end_local:
            item['end_local'] = record.end_local
        if record.cover_image_ref:
            item['cover_image_ref'] = record.cover_image_ref

        return item
