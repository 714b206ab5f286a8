"""Unit tests for EventProcessor."""
from datetime import datetime
from decimal import Decimal

import pytest

from processor.event_processor import EventProcessor
from processor.models import EventbriteEvent


def make_event(**overrides):
    payload = {
        'id': 'e1',
        'name': {'text': 'Frühlingsreihe Konzert'},
        'start': {'local': '2024-05-01T18:00:00'},
        'end': {'local': '2024-05-01T20:00:00'},
        'status': 'live',
        'url': 'https://www.eventbrite.de/e/e1',
        'is_free': False,
        'currency': 'EUR',
        'logo': {'url': 'https://img.evbuc.com/e1.jpg'},
        'venue': {
            'name': 'Stadthalle',
            'address': {'localized_address_display': 'Marktplatz 1, 12345 Musterstadt'}
        },
        'ticket_availability': {
            'minimum_ticket_price': {'major_value': '12.50'},
            'maximum_ticket_price': {'major_value': '30.00'}
        }
    }
    payload.update(overrides)
    return EventbriteEvent.from_payload(payload)


class TestSortRank:
    """Test cases for the title based sort rank."""

    @pytest.mark.parametrize('title, rank', [
        ('Frühlingsreihe Konzert', 1),
        ('Sommerreihe: Jazz im Park', 2),
        ('Herbstreihe - Lesung', 3),
        ('Alle Reihen: Frühlingsreihe Abo', 5),
        ('Alle Reihen Sommerreihe', 6),
        ('Herbstreihe (Alle Reihen)', 7),
        ('Alle Reihen', 99),
        ('Konzert am Abend', 99),
        ('', 99),
    ])
    def test_calculate_sort_rank(self, title, rank):
        assert EventProcessor().calculate_sort_rank(title) == rank

    def test_compound_label_wins_over_single_series(self):
        """Test that the compound label takes priority over a plain series match."""
        processor = EventProcessor()

        assert processor.calculate_sort_rank('Sommerreihe Alle Reihen') == 6
        assert processor.calculate_sort_rank('Sommerreihe') == 2

    def test_compound_label_with_several_series_uses_first_rule(self):
        processor = EventProcessor()

        assert processor.calculate_sort_rank('Alle Reihen: Herbstreihe und Frühlingsreihe') == 5

    def test_matching_is_case_sensitive(self):
        processor = EventProcessor()

        assert processor.calculate_sort_rank('frühlingsreihe') == 99
        assert processor.calculate_sort_rank('alle reihen Sommerreihe') == 2


class TestTimeFields:
    """Test cases for time range and timestamp derivation."""

    def test_format_time_range(self):
        processor = EventProcessor()

        assert processor.format_time_range(
            '2024-05-01T18:00:00', '2024-05-01T20:00:00'
        ) == '18:00 – 20:00'

    def test_format_time_range_without_end(self):
        assert EventProcessor().format_time_range('2024-05-01T09:05:00', None) == '09:05'

    @pytest.mark.parametrize('start, end', [
        ('2024-05-01T00:00:00', '2024-05-01T23:59:00'),
        ('2024-12-31T07:45:00', '2025-01-01T01:15:00'),
        ('2024-03-31T02:30:00', '2024-03-31T03:30:00'),
    ])
    def test_format_time_range_reparses_to_minutes(self, start, end):
        """Test that the formatted range keeps minute-of-day precision."""
        formatted = EventProcessor().format_time_range(start, end)
        start_text, end_text = formatted.split(' – ')

        for original, text in ((start, start_text), (end, end_text)):
            parsed = datetime.strptime(text, '%H:%M')
            original_dt = datetime.fromisoformat(original)
            assert (parsed.hour, parsed.minute) == (original_dt.hour, original_dt.minute)

    def test_to_unix_timestamp_utc(self):
        assert EventProcessor().to_unix_timestamp('2024-05-01T18:00:00') == 1714586400

    def test_to_unix_timestamp_configured_timezone(self):
        processor = EventProcessor(event_timezone='Europe/Berlin')

        # CEST is UTC+2
        assert processor.to_unix_timestamp('2024-05-01T18:00:00') == 1714579200

    def test_derive_fields(self):
        derived = EventProcessor().derive_fields(make_event())

        assert derived.sort_rank == 1
        assert derived.formatted_time_range == '18:00 – 20:00'
        assert derived.unix_timestamp == 1714586400


class TestBuildRecord:
    """Test cases for record building."""

    @pytest.mark.parametrize('upstream, expected', [
        ('draft', 'draft'),
        ('live', 'published'),
        ('started', 'published'),
        ('completed', 'published'),
        (None, 'published'),
    ])
    def test_map_status(self, upstream, expected):
        assert EventProcessor.map_status(upstream) == expected

    def test_build_record_complete_event(self):
        record = EventProcessor().build_record(make_event(), cover_image_ref='covers/abc.jpg')

        assert record.event_id == 'e1'
        assert record.title == 'Frühlingsreihe Konzert'
        assert record.status == 'published'
        assert record.address == 'Marktplatz 1, 12345 Musterstadt'
        assert record.location_name == 'Stadthalle'
        assert record.is_free is False
        assert record.price_min == Decimal('12.50')
        assert record.price_max == Decimal('30.00')
        assert record.currency == 'EUR'
        assert record.sort_rank == 1
        assert record.start_local == '2024-05-01T18:00:00'
        assert record.end_local == '2024-05-01T20:00:00'
        assert record.formatted_time_range == '18:00 – 20:00'
        assert record.unix_timestamp == 1714586400
        assert record.url == 'https://www.eventbrite.de/e/e1'
        assert record.cover_image_ref == 'covers/abc.jpg'
        assert record.last_updated > 0

    def test_build_record_without_enrichment(self):
        """Test that missing venue and ticket data leave defaults."""
        event = EventbriteEvent.from_payload({
            'id': 'e2',
            'name': {'text': 'Offene Probe'},
            'start': {'local': '2024-06-01T10:00:00'},
            'end': {'local': '2024-06-01T11:30:00'},
            'status': 'draft'
        })

        record = EventProcessor().build_record(event)

        assert record.status == 'draft'
        assert record.address == ''
        assert record.location_name == ''
        assert record.price_min is None
        assert record.price_max is None
        assert record.currency == ''
        assert record.sort_rank == 99
        assert record.cover_image_ref is None

    def test_process_events_skips_invalid(self):
        """Test that events without name or usable start are skipped."""
        processor = EventProcessor()
        events = [
            make_event(id='ok'),
            make_event(id='no-name', name={'text': ''}),
            make_event(id='no-start', start={}),
            make_event(id='bad-start', start={'local': 'next tuesday'}),
        ]

        records = processor.process_events(events, {'ok': 'covers/ok.jpg'})

        assert [record.event_id for record in records] == ['ok']
        assert records[0].cover_image_ref == 'covers/ok.jpg'
