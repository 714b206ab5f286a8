"""AWS Lambda handler for Eventbrite Events Sync."""
import json
import logging
import os
import time
from typing import Dict, Any, Optional

from client.eventbrite_client import EventbriteClient
from processor.event_enricher import EventEnricher
from processor.event_processor import EventProcessor
from scheduler.schedule_manager import ScheduleManager
from storage.asset_store import S3AssetStore
from storage.dynamodb_manager import DynamoDBManager
from sync.reconciler import Reconciler


# Attributes every LogRecord carries; anything else came in through extra=
_STANDARD_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


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

        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


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


def load_config() -> Dict[str, Any]:
    """Read configuration from environment variables."""
    return {
        'token': os.environ.get('EVENTBRITE_TOKEN') or None,
        'table_name': os.environ.get('TABLE_NAME', 'eventbrite-events'),
        'asset_bucket': os.environ.get('ASSET_BUCKET', 'eventbrite-event-covers'),
        'asset_prefix': os.environ.get('ASSET_PREFIX', 'covers/'),
        'log_level': os.environ.get('LOG_LEVEL', 'INFO'),
        'timeout_seconds': int(os.environ.get('TIMEOUT_SECONDS', '30')),
        'max_retries': int(os.environ.get('MAX_RETRIES', '3')),
        'max_pages': int(os.environ.get('MAX_PAGES', '20')),
        'enrich_workers': int(os.environ.get('ENRICH_WORKERS', '1')),
        'cycle_deadline_seconds': int(os.environ.get('CYCLE_DEADLINE_SECONDS', '600')),
        'lock_lease_seconds': int(os.environ.get('LOCK_LEASE_SECONDS', '900')),
        'event_timezone': os.environ.get('EVENT_TIMEZONE', 'UTC'),
        'schedule_rule_name': os.environ.get('SCHEDULE_RULE_NAME', 'eventbrite-sync-hourly'),
        'schedule_expression': os.environ.get('SCHEDULE_EXPRESSION', 'rate(1 hour)'),
        'listing_limit': int(os.environ.get('LISTING_LIMIT', '20')),
    }


def build_reconciler(config: Dict[str, Any]) -> Reconciler:
    """Wire the sync components from configuration."""
    client = EventbriteClient(
        token=config['token'],
        timeout=config['timeout_seconds'],
        max_retries=config['max_retries'],
        max_pages=config['max_pages']
    )
    return Reconciler(
        client=client,
        enricher=EventEnricher(client),
        processor=EventProcessor(event_timezone=config['event_timezone']),
        record_store=DynamoDBManager(table_name=config['table_name']),
        asset_store=S3AssetStore(
            bucket_name=config['asset_bucket'],
            prefix=config['asset_prefix']
        ),
        enrich_workers=config['enrich_workers'],
        cycle_deadline_seconds=config['cycle_deadline_seconds'],
        lock_lease_seconds=config['lock_lease_seconds']
    )


def build_schedule_manager(config: Dict[str, Any], context: Any) -> ScheduleManager:
    return ScheduleManager(
        rule_name=config['schedule_rule_name'],
        target_arn=getattr(context, 'invoked_function_arn', None),
        schedule_expression=config['schedule_expression']
    )


def resolve_action(event: Optional[Dict[str, Any]]) -> tuple[str, str]:
    """
    Work out what an invocation asks for.

    Args:
        event: Lambda event payload

    Returns:
        Tuple of (action, trigger)
    """
    event = event or {}
    if event.get('source') == 'aws.events':
        return 'sync', 'scheduled'
    action = event.get('action', 'sync')
    trigger = event.get('trigger', 'activation' if action == 'activate' else 'manual')
    return action, trigger


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body, default=str)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for Eventbrite Events Sync.

    Supported actions: 'sync' (default, also used for EventBridge schedule
    events), 'activate' (arm schedule, then sync), 'deactivate' (disarm
    schedule) and 'list' (return the published listing).

    Args:
        event: Invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    config = load_config()

    setup_logging(config['log_level'])
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action, trigger = resolve_action(event)
    logger.info(
        "Lambda execution started",
        extra={
            'action': action,
            'trigger': trigger,
            'table_name': config['table_name'],
            'token_configured': bool(config['token'])
        }
    )

    try:
        if action == 'deactivate':
            changed = build_schedule_manager(config, context).disable()
            return _response(200, {
                'message': 'Schedule disabled' if changed else 'Schedule was not enabled',
                'schedule_enabled': False
            })

        if action == 'list':
            records = DynamoDBManager(table_name=config['table_name']).list_events(
                limit=config['listing_limit']
            )
            return _response(200, {
                'message': f"{len(records)} events",
                'events': [record.to_dict() for record in records]
            })

        if action == 'activate':
            build_schedule_manager(config, context).enable()
        elif action != 'sync':
            logger.warning(f"Unknown action requested: {action}")
            return _response(400, {'message': f"Unknown action: {action}"})

        reconciler = build_reconciler(config)
        logger.info("Running sync cycle")
        result = reconciler.run_sync_cycle(trigger=trigger)

        duration = time.time() - start_time
        if result.status == 'failed':
            logger.error(
                "Lambda execution finished with a failed sync",
                extra={'duration_seconds': round(duration, 2), 'errors': result.errors}
            )
            return _response(500, {
                'message': 'Sync failed',
                'statistics': result.to_dict(),
                'errors': result.errors
            })

        logger.info(
            "Lambda execution completed successfully",
            extra={'duration_seconds': round(duration, 2), 'sync_status': result.status}
        )
        return _response(200, {
            'message': (
                'Sync completed successfully' if result.status == 'success'
                else 'Sync skipped, another cycle is running'
            ),
            'statistics': result.to_dict(),
            'errors': result.errors
        })

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Lambda execution failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
