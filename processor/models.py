"""Data models for event synchronization."""
from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional


def _nested(payload: Dict[str, Any], *keys: str) -> Any:
    """Walk nested mappings, returning None as soon as a level is missing."""
    value: Any = payload
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == '':
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    # NaN and Infinity parse but cannot be stored
    return number if number.is_finite() else None


@dataclass
class EventbriteEvent:
    """Upstream Eventbrite event with the fields the sync relies on."""

    # Top-level upstream keys that map onto explicit fields
    KNOWN_FIELDS = (
        'id', 'name', 'status', 'start', 'end', 'url', 'is_free',
        'currency', 'logo', 'venue', 'ticket_availability',
    )

    event_id: str
    name: str
    status: Optional[str] = None
    start_local: Optional[str] = None
    end_local: Optional[str] = None
    url: Optional[str] = None
    is_free: bool = False
    currency: Optional[str] = None
    logo_url: Optional[str] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    price_min: Optional[Decimal] = None
    price_max: Optional[Decimal] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'EventbriteEvent':
        """
        Build an event from an Eventbrite API mapping.

        Args:
            payload: Raw event object as returned by the API

        Returns:
            EventbriteEvent with unrecognized top-level keys kept in ``extra``
        """
        event_id = payload.get('id')
        return cls(
            event_id=str(event_id) if event_id is not None else '',
            name=_nested(payload, 'name', 'text') or '',
            status=payload.get('status'),
            start_local=_nested(payload, 'start', 'local'),
            end_local=_nested(payload, 'end', 'local'),
            url=payload.get('url'),
            is_free=bool(payload.get('is_free', False)),
            currency=payload.get('currency'),
            logo_url=_nested(payload, 'logo', 'url'),
            venue_name=_nested(payload, 'venue', 'name'),
            venue_address=_nested(
                payload, 'venue', 'address', 'localized_address_display'
            ),
            price_min=_to_decimal(_nested(
                payload, 'ticket_availability', 'minimum_ticket_price', 'major_value'
            )),
            price_max=_to_decimal(_nested(
                payload, 'ticket_availability', 'maximum_ticket_price', 'major_value'
            )),
            extra={
                key: value for key, value in payload.items()
                if key not in cls.KNOWN_FIELDS
            },
            raw=dict(payload),
        )

    def merge(self, detail: Dict[str, Any]) -> 'EventbriteEvent':
        """Shallow-merge a detail response over this event; detail keys win."""
        return EventbriteEvent.from_payload({**self.raw, **detail})


@dataclass
class DerivedFields:
    """Presentation fields computed from an event."""
    sort_rank: int
    formatted_time_range: str
    unix_timestamp: int


@dataclass
class EventRecord:
    """Event as persisted in the record store."""
    event_id: str
    title: str
    status: str
    address: str
    location_name: str
    is_free: bool
    price_min: Optional[Decimal]
    price_max: Optional[Decimal]
    currency: str
    sort_rank: int
    start_local: str
    end_local: Optional[str]
    formatted_time_range: str
    unix_timestamp: int
    url: str
    cover_image_ref: Optional[str]
    last_updated: int

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation with prices as strings."""
        data = asdict(self)
        for key in ('price_min', 'price_max'):
            if data[key] is not None:
                data[key] = str(data[key])
        return data


@dataclass
class SyncResult:
    """Result of one sync cycle."""
    status: str
    trigger: str
    events_fetched: int = 0
    events_inserted: int = 0
    events_deleted: int = 0
    assets_stored: int = 0
    assets_released: int = 0
    enrichment_failures: int = 0
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
