"""Event processor deriving presentation fields and building records."""
import logging
import time
from datetime import datetime, timezone, tzinfo
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from processor.models import DerivedFields, EventbriteEvent, EventRecord

logger = logging.getLogger(__name__)


class EventProcessor:
    """Processor computing sort rank, time range and timestamp for events."""

    DEFAULT_SORT_RANK = 99
    COMPOUND_SERIES_LABEL = 'Alle Reihen'

    # Ordered (required title substrings, rank); the first matching row wins,
    # so compound rows must stay ahead of the single-series rows.
    SORT_RULES: Tuple[Tuple[Tuple[str, ...], int], ...] = (
        ((COMPOUND_SERIES_LABEL, 'Frühlingsreihe'), 5),
        ((COMPOUND_SERIES_LABEL, 'Sommerreihe'), 6),
        ((COMPOUND_SERIES_LABEL, 'Herbstreihe'), 7),
        (('Frühlingsreihe',), 1),
        (('Sommerreihe',), 2),
        (('Herbstreihe',), 3),
    )

    LOCAL_TIME_FORMAT = '%Y-%m-%dT%H:%M:%S'
    TIME_RANGE_SEPARATOR = ' – '

    def __init__(self, event_timezone: str = 'UTC'):
        """
        Initialize the processor.

        Args:
            event_timezone: IANA zone the upstream local timestamps are in
        """
        self.tz: tzinfo = timezone.utc if event_timezone == 'UTC' else ZoneInfo(event_timezone)

    def process_events(
        self,
        events: List[EventbriteEvent],
        cover_refs: Optional[Dict[str, str]] = None
    ) -> List[EventRecord]:
        """
        Build records for enriched events, skipping invalid ones.

        Args:
            events: Enriched upstream events
            cover_refs: Mapping of event id to stored cover asset reference

        Returns:
            List of EventRecord objects in input order
        """
        cover_refs = cover_refs or {}
        records = []

        for event in events:
            try:
                record = self.build_record(event, cover_refs.get(event.event_id))
                if record:
                    records.append(record)
            except Exception as e:
                logger.warning(
                    f"Failed to process event '{event.name}': {e}"
                )
                continue

        logger.info(
            f"Processed {len(records)} valid events out of "
            f"{len(events)} total events"
        )
        return records

    def build_record(
        self,
        event: EventbriteEvent,
        cover_image_ref: Optional[str] = None
    ) -> Optional[EventRecord]:
        """
        Build a single record.

        Args:
            event: Enriched upstream event
            cover_image_ref: Stored cover asset reference, if any

        Returns:
            EventRecord or None if validation fails
        """
        if not self._validate_required_fields(event):
            return None

        derived = self.derive_fields(event)

        return EventRecord(
            event_id=event.event_id,
            title=event.name,
            status=self.map_status(event.status),
            address=event.venue_address or '',
            location_name=event.venue_name or '',
            is_free=event.is_free,
            price_min=event.price_min,
            price_max=event.price_max,
            currency=event.currency or '',
            sort_rank=derived.sort_rank,
            start_local=event.start_local,
            end_local=event.end_local,
            formatted_time_range=derived.formatted_time_range,
            unix_timestamp=derived.unix_timestamp,
            url=event.url or '',
            cover_image_ref=cover_image_ref,
            last_updated=int(time.time())
        )

    def derive_fields(self, event: EventbriteEvent) -> DerivedFields:
        """
        Compute sort rank, formatted time range and start timestamp.

        Raises:
            ValueError: If the start timestamp cannot be parsed
        """
        return DerivedFields(
            sort_rank=self.calculate_sort_rank(event.name),
            formatted_time_range=self.format_time_range(event.start_local, event.end_local),
            unix_timestamp=self.to_unix_timestamp(event.start_local)
        )

    def calculate_sort_rank(self, title: str) -> int:
        """Return the rank of the first rule whose substrings all occur in the title."""
        for substrings, rank in self.SORT_RULES:
            if all(substring in title for substring in substrings):
                return rank
        return self.DEFAULT_SORT_RANK

    def format_time_range(self, start_local: str, end_local: Optional[str]) -> str:
        """
        Format local start and end as 'HH:MM – HH:MM'.

        Only the start is returned when there is no end time.
        """
        start = self._parse_local(start_local).strftime('%H:%M')
        if not end_local:
            return start
        end = self._parse_local(end_local).strftime('%H:%M')
        return f"{start}{self.TIME_RANGE_SEPARATOR}{end}"

    def to_unix_timestamp(self, start_local: str) -> int:
        """Seconds since epoch for a local timestamp in the configured zone."""
        return int(self._parse_local(start_local).replace(tzinfo=self.tz).timestamp())

    @staticmethod
    def map_status(upstream_status: Optional[str]) -> str:
        return 'draft' if upstream_status == 'draft' else 'published'

    def _parse_local(self, value: str) -> datetime:
        # Eventbrite local times have no offset; tolerate a missing seconds part
        try:
            return datetime.strptime(value, self.LOCAL_TIME_FORMAT)
        except ValueError:
            return datetime.fromisoformat(value).replace(tzinfo=None)

    def _validate_required_fields(self, event: EventbriteEvent) -> bool:
        """
        Validate that required fields are present and usable.

        Args:
            event: Event to validate

        Returns:
            True if valid, False otherwise
        """
        if not event.event_id:
            logger.warning(f"Event '{event.name}' missing required field: id")
            return False

        if not event.name or not event.name.strip():
            logger.warning(f"Event {event.event_id} missing required field: name")
            return False

        if not event.start_local:
            logger.warning(
                f"Event '{event.name}' missing required field: start.local"
            )
            return False

        try:
            self._parse_local(event.start_local)
        except ValueError:
            logger.warning(
                f"Invalid start time format for event '{event.name}': "
                f"{event.start_local}"
            )
            return False

        return True
