from datetime import datetime, timedelta, timezone

import pytest

from models import CloudLayer, DecodedMetar, DecodedTaf, RiskInputs, TafPeriod, WindData

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_metar():
    def _make(**overrides):
        values = {
            'icao': 'KJFK',
            'raw_text': 'METAR KJFK 011151Z 27008KT 10SM FEW250 18/06 A3012',
            'observed': NOW - timedelta(minutes=9),
            'temperature_c': 18.0,
            'dewpoint_c': 6.0,
            'wind': WindData(degrees=270, speed_kts=8),
            'visibility_miles': 10.0,
            'clouds': (CloudLayer('FEW', 25000),),
            'flight_category': 'VFR',
        }
        values.update(overrides)
        return DecodedMetar(**values)
    return _make


@pytest.fixture
def make_taf():
    def _make(periods=None, **overrides):
        if periods is None:
            periods = (TafPeriod(
                valid_from=NOW - timedelta(hours=1),
                valid_to=NOW + timedelta(hours=23),
                raw_text='27010KT P6SM FEW250',
                wind=WindData(degrees=270, speed_kts=10),
                visibility_miles=6.0,
                clouds=(CloudLayer('FEW', 25000),),
                flight_category='VFR',
            ),)
        values = {
            'icao': 'KJFK',
            'raw_text': 'TAF KJFK 011120Z 0112/0212 27010KT P6SM FEW250',
            'issued': NOW - timedelta(minutes=40),
            'valid_from': NOW,
            'valid_to': NOW + timedelta(hours=24),
            'forecast': tuple(periods),
        }
        values.update(overrides)
        return DecodedTaf(**values)
    return _make


@pytest.fixture
def make_inputs(make_metar, make_taf):
    def _make(icao='KJFK', **overrides):
        values = {
            'icao': icao,
            'now': NOW,
            'metar': make_metar(icao=icao),
            'taf': make_taf(icao=icao),
        }
        values.update(overrides)
        return RiskInputs(**values)
    return _make
