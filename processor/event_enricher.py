"""Best-effort enrichment of events with expanded API aspects."""
import logging
from typing import List, Optional, Tuple

from client.errors import ApiClientError, UnconfiguredError
from client.eventbrite_client import EventbriteClient
from processor.models import EventbriteEvent

logger = logging.getLogger(__name__)


class EventEnricher:
    """Merges secondary event detail (tickets, venue) into listed events."""

    ASPECTS = ('ticket_availability', 'venue')

    def __init__(self, client: EventbriteClient):
        self.client = client

    def enrich(self, event: EventbriteEvent, aspect: str) -> EventbriteEvent:
        """
        Merge one expanded aspect into an event.

        Args:
            event: Event to enrich
            aspect: Aspect name to expand

        Returns:
            The merged event, or the original event if the call failed
        """
        detail = self._fetch_aspect(event, aspect)
        if detail is None:
            return event
        return event.merge(detail)

    def enrich_all(self, event: EventbriteEvent) -> Tuple[EventbriteEvent, List[str]]:
        """
        Apply every aspect in order.

        Returns:
            Tuple of (enriched event, names of aspects that failed)
        """
        failed = []
        for aspect in self.ASPECTS:
            detail = self._fetch_aspect(event, aspect)
            if detail is None:
                failed.append(aspect)
                continue
            event = event.merge(detail)
        return event, failed

    def _fetch_aspect(self, event: EventbriteEvent, aspect: str) -> Optional[dict]:
        try:
            detail = self.client.get_event(event.event_id, expand=aspect)
        except UnconfiguredError:
            raise
        except ApiClientError as e:
            logger.warning(
                f"Could not fetch {aspect} for event {event.event_id}, "
                f"keeping existing fields: {e}"
            )
            return None

        if not isinstance(detail, dict):
            logger.warning(f"Ignoring non-object {aspect} detail for event {event.event_id}")
            return None
        return detail
