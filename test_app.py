"""
Tests for the JSON API (Flask test client, provider calls patched out)
"""

import pytest

import app as api


@pytest.fixture
def client(monkeypatch, make_inputs):
    monkeypatch.setattr(api.airport_manager, 'get_airport_coordinates', lambda code: (-73.78, 40.64))
    monkeypatch.setattr(api.weather_manager, 'build_risk_inputs',
                        lambda icao, now, airport_coords=None: make_inputs(icao))
    monkeypatch.setattr(api.weather_manager, 'get_hazards', lambda near=None: [])
    monkeypatch.setattr(api.weather_manager, 'get_pireps', lambda icao: [])
    api.app.config['TESTING'] = True
    with api.app.test_client() as test_client:
        yield test_client


def test_health(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_airport_risk(client):
    response = client.get('/api/weather/risk?airport=kjfk')
    data = response.get_json()

    assert response.status_code == 200
    assert data['icao'] == 'KJFK'
    assert data['status'] == 'ok'
    assert data['phase'] == 'preflight'
    assert data['tier'] == 'on_track'
    assert len(data['factors']) == 6


def test_airport_risk_with_schedule(client):
    response = client.get('/api/weather/risk?airport=KJFK'
                          '&departure=2024-05-01T12:30:00Z&arrival=2024-05-01T15:00:00Z')
    assert response.status_code == 200
    assert response.get_json()['phase'] == 'departure'


def test_invalid_icao_is_rejected(client):
    assert client.get('/api/weather/risk?airport=JFK1').status_code == 400
    assert client.get('/api/weather/risk').status_code == 400
    assert client.get('/api/weather/briefing/K1').status_code == 400


def test_invalid_timestamp_is_rejected(client):
    response = client.get('/api/weather/risk?airport=KJFK&departure=soon')
    assert response.status_code == 400
    assert 'departure' in response.get_json()['error']


def test_out_of_range_epoch_is_rejected(client):
    response = client.get('/api/weather/risk?airport=KJFK&departure=99999999999999')
    assert response.status_code == 400
    assert 'departure' in response.get_json()['error']


def test_debug_endpoint(client):
    data = client.get('/api/weather/risk/debug?airport=KJFK').get_json()
    assert set(data) == {'inputs', 'factors', 'aggregation', 'result'}
    assert data['inputs']['icao'] == 'KJFK'
    assert len(data['factors']) == 6
    assert data['result']['score'] == data['aggregation']['final_score']


def test_flight_risk(client):
    response = client.get('/api/weather/risk/flight?origin=KJFK&destination=KBOS'
                          '&departure=2024-05-01T18:00:00Z&arrival=2024-05-01T19:30:00Z')
    data = response.get_json()

    assert response.status_code == 200
    assert data['phase'] == 'planning'
    assert data['origin_weight'] + data['dest_weight'] == pytest.approx(1.0)
    assert data['origin_result']['icao'] == 'KJFK'
    assert data['dest_result']['icao'] == 'KBOS'
    assert data['alert_level'] == 'green'


def test_flight_risk_requires_both_airports(client):
    assert client.get('/api/weather/risk/flight?origin=KJFK').status_code == 400


def test_briefing_without_hazards(client):
    data = client.get('/api/weather/briefing/kjfk').get_json()
    assert data == {'summary': None, 'items': [], 'severity': 'none'}


def test_unexpected_error_returns_500(client, monkeypatch):
    def explode(icao, now, airport_coords=None):
        raise RuntimeError('provider exploded')

    monkeypatch.setattr(api.weather_manager, 'build_risk_inputs', explode)
    response = client.get('/api/weather/risk?airport=KJFK')
    assert response.status_code == 500
    assert response.get_json()['error'] == 'provider exploded'
