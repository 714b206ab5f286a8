"""Sync cycle replacing the stored event set with the current Eventbrite events."""
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import List, Optional, Tuple

from client.errors import ApiClientError
from client.eventbrite_client import EventbriteClient
from processor.event_enricher import EventEnricher
from processor.event_processor import EventProcessor
from processor.models import EventbriteEvent, EventRecord, SyncResult
from storage.asset_store import S3AssetStore
from storage.dynamodb_manager import DynamoDBManager, PurgeIncompleteError

logger = logging.getLogger(__name__)


class CycleState(Enum):
    IDLE = 'idle'
    FETCHING_ORG = 'fetching_org'
    FETCHING_EVENTS = 'fetching_events'
    ENRICHING = 'enriching'
    PURGING = 'purging'
    INSERTING = 'inserting'
    FAILED = 'failed'


class NoOrganizationError(Exception):
    """The token owner belongs to no organization."""


class CycleDeadlineExceeded(Exception):
    """The cycle ran past its deadline before the purge started."""


# Failures that are expected operational outcomes and need no traceback
_EXPECTED_ABORTS = (ApiClientError, NoOrganizationError, CycleDeadlineExceeded)


class Reconciler:
    """
    Runs sync cycles: fetch, enrich, purge, insert.

    Everything that can fail upstream (organization, event list, enrichment,
    cover downloads) happens before any stored data is touched. Only then are
    the existing records and their cover assets deleted and the new batch
    written.
    """

    def __init__(
        self,
        client: EventbriteClient,
        enricher: EventEnricher,
        processor: EventProcessor,
        record_store: DynamoDBManager,
        asset_store: S3AssetStore,
        enrich_workers: int = 1,
        cycle_deadline_seconds: int = 600,
        lock_lease_seconds: int = 900
    ):
        self.client = client
        self.enricher = enricher
        self.processor = processor
        self.record_store = record_store
        self.asset_store = asset_store
        self.enrich_workers = max(1, enrich_workers)
        self.cycle_deadline_seconds = cycle_deadline_seconds
        self.lock_lease_seconds = lock_lease_seconds
        self.state = CycleState.IDLE
        self._cycle_lock = threading.Lock()

    def run_sync_cycle(self, trigger: str = 'scheduled') -> SyncResult:
        """
        Run one complete sync cycle.

        Overlapping calls, in this process or in another invocation sharing
        the table, return a 'skipped' result without touching anything.

        Args:
            trigger: What started the cycle (scheduled, activation, manual)

        Returns:
            SyncResult describing the outcome
        """
        start_time = time.time()
        result = SyncResult(status='failed', trigger=trigger)

        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Sync cycle already in progress, skipping", extra={'trigger': trigger})
            result.status = 'skipped'
            return result

        try:
            logger.info(f"Sync cycle started ({trigger})")
            self._run_with_lease(result, deadline=start_time + self.cycle_deadline_seconds)
        finally:
            self._transition(CycleState.IDLE)
            self._cycle_lock.release()
            result.duration_seconds = round(time.time() - start_time, 2)

        logger.info(
            f"Sync cycle finished with status {result.status}",
            extra=result.to_dict()
        )
        return result

    def _run_with_lease(self, result: SyncResult, deadline: float) -> None:
        owner = uuid.uuid4().hex
        try:
            acquired = self.record_store.acquire_cycle_lock(owner, self.lock_lease_seconds)
        except Exception as e:
            logger.error(f"Could not acquire sync lock: {e}", exc_info=True)
            result.errors.append(f"{type(e).__name__}: {e}")
            return

        if not acquired:
            logger.warning("Another sync cycle holds the lock, skipping")
            result.status = 'skipped'
            return

        try:
            self._run_cycle(result, deadline)
        finally:
            try:
                self.record_store.release_cycle_lock(owner)
            except Exception as e:
                # The lease expires on its own
                logger.error(f"Could not release sync lock: {e}", exc_info=True)

    def _run_cycle(self, result: SyncResult, deadline: float) -> None:
        staged_refs: List[str] = []

        try:
            records = self._prepare_records(result, deadline, staged_refs)
        except Exception as e:
            self._transition(CycleState.FAILED)
            logger.error(
                f"Sync cycle aborted, existing events left untouched: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=not isinstance(e, _EXPECTED_ABORTS)
            )
            result.errors.append(f"{type(e).__name__}: {e}")
            result.assets_released += self._release_assets(staged_refs)
            return

        try:
            self._transition(CycleState.PURGING)
            try:
                deleted = self.record_store.delete_all_events()
            except PurgeIncompleteError as e:
                self._transition(CycleState.FAILED)
                logger.error(
                    f"Sync cycle aborted during purge, new events not inserted: {e}",
                    extra={'error_type': type(e).__name__}
                )
                result.errors.append(f"{type(e).__name__}: {e}")
                result.events_deleted = len(e.deleted)
                result.assets_released += self._release_old_covers(e.deleted)
                result.assets_released += self._release_assets(staged_refs)
                return
            result.events_deleted = len(deleted)
            result.assets_released += self._release_old_covers(deleted)

            self._transition(CycleState.INSERTING)
            result.events_inserted = self.record_store.batch_write_events(records)
        except Exception as e:
            self._transition(CycleState.FAILED)
            logger.error(
                f"Sync cycle failed after purge started, stored events may be empty or partial: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            result.errors.append(f"{type(e).__name__}: {e}")
            return

        if result.events_inserted != len(records):
            result.errors.append(
                f"Inserted {result.events_inserted} of {len(records)} events"
            )
            return

        result.status = 'success'

    def _prepare_records(
        self,
        result: SyncResult,
        deadline: float,
        staged_refs: List[str]
    ) -> List[EventRecord]:
        """Fetch, enrich and build the complete new batch without touching storage."""
        self._transition(CycleState.FETCHING_ORG)
        organization_id = self.client.get_organization_id()
        if organization_id is None:
            raise NoOrganizationError("No organization found for the configured token")

        self._transition(CycleState.FETCHING_EVENTS)
        payloads = self.client.list_organization_events(organization_id)
        result.events_fetched = len(payloads)

        self._transition(CycleState.ENRICHING)
        events: List[EventbriteEvent] = []
        seen_ids = set()
        for payload in payloads:
            if not isinstance(payload, dict):
                continue
            event = EventbriteEvent.from_payload(payload)
            if event.event_id in seen_ids:
                logger.warning(f"Skipping duplicate event {event.event_id}")
                continue
            seen_ids.add(event.event_id)
            events.append(event)

        def enrich(event: EventbriteEvent) -> Tuple[EventbriteEvent, Optional[str], List[str]]:
            if time.time() > deadline:
                raise CycleDeadlineExceeded(
                    f"Cycle exceeded {self.cycle_deadline_seconds} seconds while enriching"
                )
            event, failed = self.enricher.enrich_all(event)
            cover_ref = self._store_cover(event)
            if cover_ref:
                staged_refs.append(cover_ref)
            return event, cover_ref, failed

        if self.enrich_workers > 1:
            with ThreadPoolExecutor(max_workers=self.enrich_workers) as executor:
                enriched = list(executor.map(enrich, events))
        else:
            enriched = [enrich(event) for event in events]

        result.assets_stored = len(staged_refs)
        result.enrichment_failures = sum(len(failed) for _, _, failed in enriched)

        cover_refs = {event.event_id: ref for event, ref, _ in enriched if ref}
        records = self.processor.process_events([event for event, _, _ in enriched], cover_refs)
        records = self.record_store.storable_records(records)

        # Covers of events that failed validation have no owning record
        used = {record.cover_image_ref for record in records if record.cover_image_ref}
        unused = [ref for ref in staged_refs if ref not in used]
        if unused:
            result.assets_released += self._release_assets(unused)
            staged_refs[:] = [ref for ref in staged_refs if ref in used]

        return records

    def _store_cover(self, event: EventbriteEvent) -> Optional[str]:
        if not event.logo_url:
            return None
        try:
            data, content_type = self.client.fetch_binary(event.logo_url)
        except ApiClientError as e:
            logger.warning(f"Could not download cover for event {event.event_id}: {e}")
            return None
        return self.asset_store.store_asset(data, content_type)

    def _release_old_covers(self, deleted_items: List[dict]) -> int:
        return self._release_assets(
            [item['cover_image_ref'] for item in deleted_items if item.get('cover_image_ref')]
        )

    def _release_assets(self, refs: List[str]) -> int:
        return sum(1 for ref in refs if self.asset_store.release_asset(ref))

    def _transition(self, state: CycleState) -> None:
        if state is not self.state:
            logger.info(f"Sync cycle state: {self.state.name} -> {state.name}")
        self.state = state
