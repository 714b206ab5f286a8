"""Unit tests for data models."""
from decimal import Decimal

from processor.models import EventbriteEvent, SyncResult


def test_from_payload_keeps_unknown_fields_in_extra():
    event = EventbriteEvent.from_payload({
        'id': 123,
        'name': {'text': 'Sommerreihe'},
        'capacity': 200,
        'organizer_id': 'org-1'
    })

    assert event.event_id == '123'
    assert event.name == 'Sommerreihe'
    assert event.extra == {'capacity': 200, 'organizer_id': 'org-1'}


def test_from_payload_tolerates_missing_nested_objects():
    event = EventbriteEvent.from_payload({'id': 'e1', 'venue': None, 'logo': None})

    assert event.name == ''
    assert event.venue_name is None
    assert event.venue_address is None
    assert event.logo_url is None
    assert event.price_min is None


def test_from_payload_unparseable_price_is_none():
    event = EventbriteEvent.from_payload({
        'id': 'e1',
        'ticket_availability': {
            'minimum_ticket_price': {'major_value': 'n/a'},
            'maximum_ticket_price': {'major_value': '15'}
        }
    })

    assert event.price_min is None
    assert event.price_max == Decimal('15')


def test_merge_overrides_and_keeps_fields():
    """Test shallow merge: detail wins, absent keys survive."""
    event = EventbriteEvent.from_payload({
        'id': 'e1',
        'name': {'text': 'Alt'},
        'url': 'https://example.com/e1',
        'capacity': 50
    })

    merged = event.merge({'name': {'text': 'Neu'}, 'venue': {'name': 'Aula'}})

    assert merged.name == 'Neu'
    assert merged.url == 'https://example.com/e1'
    assert merged.venue_name == 'Aula'
    assert merged.extra == {'capacity': 50}
    # original is untouched
    assert event.name == 'Alt'
    assert event.venue_name is None


def test_sync_result_to_dict():
    result = SyncResult(status='success', trigger='manual', events_inserted=3)

    data = result.to_dict()

    assert data['status'] == 'success'
    assert data['events_inserted'] == 3
    assert data['errors'] == []


def test_from_payload_non_finite_price_is_none():
    event = EventbriteEvent.from_payload({
        'id': 'e1',
        'ticket_availability': {
            'minimum_ticket_price': {'major_value': 'NaN'},
            'maximum_ticket_price': {'major_value': 'Infinity'}
        }
    })

    assert event.price_min is None
    assert event.price_max is None
