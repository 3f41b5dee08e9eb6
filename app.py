# app.py - JSON API over the weather risk engine
import logging
import re
from datetime import datetime, timezone

from flask import Flask, jsonify, request
from flask_cors import CORS

from config import Config
from flight_phase import parse_timestamp
from hazard_briefing import format_hazard_briefing
from risk_engine import evaluate_airport_risk, evaluate_flight_risk
from risk_factors import assess_all
from weather_apis import AirportDataManager, WeatherAPIManager

logging.basicConfig(level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

weather_manager = WeatherAPIManager()
airport_manager = AirportDataManager()

ICAO_PATTERN = re.compile(r'^[A-Z]{4}$')


class InvalidRequest(ValueError):
    pass


def _icao_param(value):
    code = (value or '').strip().upper()
    if not ICAO_PATTERN.match(code):
        raise InvalidRequest(f"Invalid ICAO code: {value!r}")
    return code


def _time_param(name):
    value = request.args.get(name)
    if value is None or value.strip() == '':
        return None
    value = value.strip()
    parsed = parse_timestamp(int(value) if value.isdigit() else value)
    if parsed is None:
        raise InvalidRequest(f"Invalid timestamp for {name}: {value!r}")
    return parsed


def _now_param():
    return _time_param('now') or datetime.now(timezone.utc)


def _airport_inputs(icao, now):
    coords = airport_manager.get_airport_coordinates(icao)
    return weather_manager.build_risk_inputs(icao, now, airport_coords=coords)


@app.errorhandler(InvalidRequest)
def handle_bad_request(e):
    return jsonify({'error': str(e)}), 400


@app.route('/api/health')
def health():
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'checkwx_configured': bool(Config.CHECKWX_API_KEY),
    })


@app.route('/api/weather/risk')
def airport_risk():
    icao = _icao_param(request.args.get('airport'))
    departure = _time_param('departure')
    arrival = _time_param('arrival')
    now = _now_param()
    try:
        logger.info(f"🎯 Risk request for {icao}")
        inputs = _airport_inputs(icao, now)
        result = evaluate_airport_risk(inputs, departure, arrival)
        return jsonify(result.to_dict())
    except Exception as e:
        logger.exception(f"Risk evaluation failed for {icao}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/weather/risk/debug')
def airport_risk_debug():
    icao = _icao_param(request.args.get('airport'))
    departure = _time_param('departure')
    arrival = _time_param('arrival')
    now = _now_param()
    try:
        inputs = _airport_inputs(icao, now)
        factors = assess_all(inputs)
        aggregation = evaluate_airport_risk(inputs, departure, arrival)
        return jsonify({
            'inputs': inputs.to_dict(),
            'factors': [f.to_dict() for f in factors],
            'aggregation': aggregation.to_dict(),
            'result': {
                'icao': aggregation.icao,
                'phase': aggregation.phase.value,
                'score': aggregation.final_score,
                'tier': aggregation.tier.value if aggregation.tier else None,
                'status': aggregation.status.value,
                'confidence': aggregation.confidence,
            },
        })
    except Exception as e:
        logger.exception(f"Risk debug failed for {icao}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/weather/risk/flight')
def flight_risk():
    origin = _icao_param(request.args.get('origin'))
    destination = _icao_param(request.args.get('destination'))
    departure = _time_param('departure')
    arrival = _time_param('arrival')
    now = _now_param()
    try:
        logger.info(f"🛫 Flight risk {origin} → {destination}")
        combination = evaluate_flight_risk(
            _airport_inputs(origin, now),
            _airport_inputs(destination, now),
            departure,
            arrival,
        )
        return jsonify(combination.to_dict())
    except Exception as e:
        logger.exception(f"Flight risk failed for {origin}/{destination}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/weather/briefing/<icao>')
def hazard_briefing(icao):
    icao = _icao_param(icao)
    now = _now_param()
    try:
        coords = airport_manager.get_airport_coordinates(icao)
        hazards = weather_manager.get_hazards(near=coords)
        pireps = weather_manager.get_pireps(icao)
        briefing = format_hazard_briefing(hazards, pireps, coords, now)
        return jsonify(briefing.to_dict())
    except Exception as e:
        logger.exception(f"Hazard briefing failed for {icao}")
        return jsonify({'error': str(e)}), 500


if __name__ == '__main__':
    logger.info("🛫 Weather Risk Engine API on http://localhost:5000")
    app.run(host='0.0.0.0', port=5000, debug=False)
