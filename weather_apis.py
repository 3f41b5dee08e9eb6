# weather_apis.py - Aviation Weather API Integration & Data Management
import csv
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests

from config import Config
from flight_phase import parse_timestamp
from hazard_briefing import haversine_nm
from models import (
    CloudLayer,
    DecodedMetar,
    DecodedTaf,
    HazardFeature,
    PilotReport,
    RiskInputs,
    TafPeriod,
    WindData,
)
from risk_factors import ceiling_ft, derive_flight_category
from weather_cache import InMemoryTTLCache, WeatherCache

logger = logging.getLogger(__name__)

HAZARD_SEVERITY_MAP = {
    'EXT': 'extreme',
    'EXTM': 'extreme',
    'SEV': 'high',
    'HIGH': 'high',
    'MOD': 'moderate',
    'MDT': 'moderate',
    'LGT': 'low',
    'LOW': 'low',
}

# AWC numeric severity codes
HAZARD_SEVERITY_LEVELS = {1: 'low', 2: 'moderate', 3: 'high', 4: 'extreme'}

PIREP_SEVERITY_MAP = {
    'EXTM': 'extreme',
    'EXT': 'extreme',
    'SEV': 'severe',
    'SEV-EXTM': 'extreme',
    'MOD-SEV': 'severe',
    'SEV-MOD': 'severe',
    'MOD': 'moderate',
    'MDT': 'moderate',
    'MOD-LGT': 'moderate',
    'LGT-MOD': 'moderate',
    'LGT': 'light',
    'TRC': 'light',
    'TRC-LGT': 'light',
}

FETCH_ERRORS = (requests.RequestException, ValueError, KeyError, TypeError)


# -------------------------
# Value helpers
# -------------------------
def parse_visibility_miles(value: Any) -> Optional[float]:
    """AWC/CheckWX visibility: 10, "10+", "1/2", "1 1/2", "6+ SM"."""
    if value is None or value == '':
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).upper().replace('SM', '').replace('+', '').strip()
    try:
        total = 0.0
        for part in text.split():
            if '/' in part:
                num, den = part.split('/')
                total += float(num) / float(den)
            else:
                total += float(part)
        return total
    except (ValueError, ZeroDivisionError):
        logger.debug(f"Unparseable visibility: {value!r}")
        return None


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return None


def _float_or_none(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _with_category(metar_fields: Dict[str, Any]) -> Dict[str, Any]:
    if not metar_fields.get('flight_category'):
        metar_fields['flight_category'] = derive_flight_category(
            metar_fields.get('visibility_miles'), ceiling_ft(metar_fields.get('clouds', ())))
    return metar_fields


# -------------------------
# Normalizers: AviationWeather.gov JSON
# -------------------------
def _awc_wind(data: Dict[str, Any]) -> Optional[WindData]:
    if data.get('wspd') is None:
        return None
    wdir = data.get('wdir')
    variable = isinstance(wdir, str) and wdir.upper() == 'VRB'
    return WindData(
        degrees=None if variable else _int_or_none(wdir),
        speed_kts=_int_or_none(data.get('wspd')),
        gust_kts=_int_or_none(data.get('wgst')),
        variable=variable,
    )


def _awc_clouds(layers: Optional[List[Dict[str, Any]]]) -> Tuple[CloudLayer, ...]:
    clouds = []
    for layer in layers or []:
        cover = (layer.get('cover') or '').upper()
        if not cover:
            continue
        clouds.append(CloudLayer(code=cover, feet=_int_or_none(layer.get('base')),
                                 cloud_type=layer.get('type') or None))
    return tuple(clouds)


def metar_from_awc(data: Dict[str, Any]) -> DecodedMetar:
    fields = {
        'icao': (data.get('icaoId') or '').upper(),
        'raw_text': data.get('rawOb') or data.get('raw_text') or '',
        'observed': parse_timestamp(data.get('obsTime') or data.get('reportTime')),
        'temperature_c': _float_or_none(data.get('temp')),
        'dewpoint_c': _float_or_none(data.get('dewp')),
        'wind': _awc_wind(data),
        'visibility_miles': parse_visibility_miles(data.get('visib')),
        'clouds': _awc_clouds(data.get('clouds')),
        'flight_category': data.get('fltCat') or data.get('fltcat'),
    }
    return DecodedMetar(**_with_category(fields))


def taf_from_awc(data: Dict[str, Any]) -> DecodedTaf:
    periods = []
    for fcst in data.get('fcsts') or []:
        clouds = _awc_clouds(fcst.get('clouds'))
        visibility = parse_visibility_miles(fcst.get('visib'))
        raw_parts = [fcst.get('fcstChange') or '', fcst.get('wxString') or '']
        periods.append(TafPeriod(
            valid_from=parse_timestamp(fcst.get('timeFrom')),
            valid_to=parse_timestamp(fcst.get('timeTo')),
            change_indicator=fcst.get('fcstChange') or None,
            raw_text=' '.join(p for p in raw_parts if p),
            wind=_awc_wind(fcst),
            visibility_miles=visibility,
            clouds=clouds,
            flight_category=derive_flight_category(visibility, ceiling_ft(clouds)),
        ))
    return DecodedTaf(
        icao=(data.get('icaoId') or '').upper(),
        raw_text=data.get('rawTAF') or data.get('raw_text') or '',
        issued=parse_timestamp(data.get('issueTime')),
        valid_from=parse_timestamp(data.get('validTimeFrom')),
        valid_to=parse_timestamp(data.get('validTimeTo')),
        forecast=tuple(periods),
    )


def _hazard_severity(value: Any) -> str:
    if value is None or value == '':
        return 'unknown'
    if isinstance(value, (int, float)):
        return HAZARD_SEVERITY_LEVELS.get(int(value), 'extreme' if value > 4 else 'unknown')
    return HAZARD_SEVERITY_MAP.get(str(value).strip().upper(), 'unknown')


def hazard_from_awc(data: Dict[str, Any]) -> HazardFeature:
    coords = data.get('coords') or []
    centroid = None
    points = [(p.get('lon'), p.get('lat')) for p in coords
              if p.get('lon') is not None and p.get('lat') is not None]
    if points:
        centroid = (sum(float(p[0]) for p in points) / len(points),
                    sum(float(p[1]) for p in points) / len(points))
    return HazardFeature(
        kind=(data.get('hazard') or data.get('airSigmetType') or 'unknown').lower(),
        severity=_hazard_severity(data.get('severity')),
        name=None,
        altitude_lower_ft=_int_or_none(data.get('altitudeLow1')) or None,
        altitude_upper_ft=_int_or_none(data.get('altitudeHi1')) or None,
        valid_from=parse_timestamp(data.get('validTimeFrom')),
        valid_to=parse_timestamp(data.get('validTimeTo')),
        centroid=centroid,
        raw_text=data.get('rawAirSigmet') or '',
    )


def _pirep_severity(value: Any) -> Optional[str]:
    if not value or str(value).strip().upper() in ('NEG', 'NONE', 'NIL'):
        return None
    return PIREP_SEVERITY_MAP.get(str(value).strip().upper(), 'unknown')


def pirep_from_awc(data: Dict[str, Any]) -> PilotReport:
    flight_level = _int_or_none(data.get('fltLvl'))
    return PilotReport(
        turbulence=_pirep_severity(data.get('tbInt1')),
        icing=_pirep_severity(data.get('icgInt1')),
        altitude_ft_msl=flight_level * 100 if flight_level else None,
        raw_text=data.get('rawOb') or '',
        observed=parse_timestamp(data.get('obsTime')),
    )


# -------------------------
# Normalizers: CheckWX decoded JSON
# -------------------------
def _checkwx_item(payload: Any) -> Optional[Dict[str, Any]]:
    """First decoded record of a CheckWX response, or None for empty or malformed bodies."""
    if not isinstance(payload, dict):
        return None
    items = payload.get('data')
    if not isinstance(items, list) or not items or not isinstance(items[0], dict):
        return None
    return items[0]


def _checkwx_wind(wind: Optional[Dict[str, Any]]) -> Optional[WindData]:
    if not wind or wind.get('speed_kts') is None:
        return None
    return WindData(
        degrees=_int_or_none(wind.get('degrees')),
        speed_kts=_int_or_none(wind.get('speed_kts')),
        gust_kts=_int_or_none(wind.get('gust_kts')),
        variable=wind.get('degrees') is None and (wind.get('speed_kts') or 0) > 0,
    )


def _checkwx_clouds(layers: Optional[List[Dict[str, Any]]]) -> Tuple[CloudLayer, ...]:
    clouds = []
    for layer in layers or []:
        code = (layer.get('code') or '').upper()
        if not code:
            continue
        feet = layer.get('base_feet_agl', layer.get('feet'))
        clouds.append(CloudLayer(code=code, feet=_int_or_none(feet)))
    return tuple(clouds)


def _checkwx_visibility(visibility: Optional[Dict[str, Any]]) -> Optional[float]:
    if not visibility:
        return None
    if visibility.get('miles_float') is not None:
        return _float_or_none(visibility['miles_float'])
    return parse_visibility_miles(visibility.get('miles'))


def metar_from_checkwx(data: Dict[str, Any]) -> DecodedMetar:
    temperature = data.get('temperature') or {}
    dewpoint = data.get('dewpoint') or {}
    fields = {
        'icao': (data.get('icao') or '').upper(),
        'raw_text': data.get('raw_text') or '',
        'observed': parse_timestamp(data.get('observed')),
        'temperature_c': _float_or_none(temperature.get('celsius')),
        'dewpoint_c': _float_or_none(dewpoint.get('celsius')),
        'wind': _checkwx_wind(data.get('wind')),
        'visibility_miles': _checkwx_visibility(data.get('visibility')),
        'clouds': _checkwx_clouds(data.get('clouds')),
        'flight_category': data.get('flight_category'),
    }
    return DecodedMetar(**_with_category(fields))


def _checkwx_indicator(change: Optional[Dict[str, Any]]) -> Optional[str]:
    indicator = (change or {}).get('indicator')
    if isinstance(indicator, dict):
        indicator = indicator.get('code')
    if not indicator:
        return None
    indicator = str(indicator).upper()
    return 'PROB' if indicator.startswith('PROB') else indicator


def taf_from_checkwx(data: Dict[str, Any]) -> DecodedTaf:
    stamp = data.get('timestamp') or {}
    periods = []
    for fcst in data.get('forecast') or []:
        window = fcst.get('timestamp') or {}
        if isinstance(window, str):
            window = {'from': window}
        clouds = _checkwx_clouds(fcst.get('clouds'))
        visibility = _checkwx_visibility(fcst.get('visibility'))
        conditions = ' '.join(c.get('code', '') for c in fcst.get('conditions') or [])
        periods.append(TafPeriod(
            valid_from=parse_timestamp(window.get('from')),
            valid_to=parse_timestamp(window.get('to')),
            change_indicator=_checkwx_indicator(fcst.get('change')),
            raw_text=fcst.get('raw_text') or conditions,
            wind=_checkwx_wind(fcst.get('wind')),
            visibility_miles=visibility,
            clouds=clouds,
            flight_category=fcst.get('flight_category') or derive_flight_category(visibility, ceiling_ft(clouds)),
        ))
    return DecodedTaf(
        icao=(data.get('icao') or '').upper(),
        raw_text=data.get('raw_text') or '',
        issued=parse_timestamp(data.get('issued') or stamp.get('issued')),
        valid_from=parse_timestamp(data.get('valid_time_from') or stamp.get('from')),
        valid_to=parse_timestamp(data.get('valid_time_to') or stamp.get('to')),
        forecast=tuple(periods),
    )


class WeatherAPIManager:
    """Fetches and decodes weather for the risk engine.

    Every fetch degrades to "no data" (None or an empty list) on failure; no
    retries are attempted here.
    """

    def __init__(self, cache: Optional[WeatherCache] = None, timeout: int = Config.REQUEST_TIMEOUT):
        self.timeout = timeout
        self.apis = {
            'aviationweather': {
                'base_url': Config.AVIATION_WEATHER_API,
                'priority': 1,
            },
            'checkwx': {
                'base_url': Config.CHECKWX_API,
                'api_key': Config.CHECKWX_API_KEY,
                'priority': 2,
            },
        }
        self.cache = cache if cache is not None else InMemoryTTLCache()

    def _get_json(self, url: str, params: Dict[str, Any] = None, headers: Dict[str, str] = None) -> Any:
        response = requests.get(url, params=params, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return []
        return response.json()

    def get_metars(self, icao: str, hours: int = 0) -> List[DecodedMetar]:
        """METARs from AviationWeather.gov, newest first."""
        icao = icao.upper().strip()
        cache_key = f"metar:{icao};{hours}"
        cached, hit = self.cache.get(cache_key)
        if hit:
            logger.info(f"Using cached METAR for {icao}")
            return cached

        params = {'ids': icao, 'format': 'json'}
        if hours:
            params['hours'] = hours
        try:
            data = self._get_json(f"{self.apis['aviationweather']['base_url']}/metar", params=params)
            metars = [metar_from_awc(item) for item in data or []] if isinstance(data, list) else []
        except FETCH_ERRORS as e:
            logger.warning(f"AWC METAR failed for {icao}: {e}")
            return []

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        metars.sort(key=lambda m: m.observed or epoch, reverse=True)
        if metars:
            logger.info(f"✅ Got {len(metars)} METAR(s) from AWC for {icao}")
            self.cache.set(cache_key, metars, Config.CACHE_TIMEOUT)
        return metars

    def get_metar(self, icao: str) -> Optional[DecodedMetar]:
        """Latest decoded METAR; CheckWX first when a key is configured, AWC otherwise."""
        icao = icao.upper().strip()
        if self.apis['checkwx']['api_key']:
            cache_key = f"metar_decoded:{icao}"
            cached, hit = self.cache.get(cache_key)
            if hit:
                return cached
            try:
                headers = {'X-API-Key': self.apis['checkwx']['api_key']}
                data = self._get_json(f"{self.apis['checkwx']['base_url']}/metar/{icao}/decoded", headers=headers)
                item = _checkwx_item(data)
                if item is not None:
                    metar = metar_from_checkwx(item)
                    logger.info(f"✅ Got METAR from CheckWX for {icao}")
                    self.cache.set(cache_key, metar, Config.CACHE_TIMEOUT)
                    return metar
            except FETCH_ERRORS as e:
                logger.warning(f"CheckWX METAR failed for {icao}: {e}")

        metars = self.get_metars(icao)
        return metars[0] if metars else None

    def get_taf(self, icao: str) -> Optional[DecodedTaf]:
        """Decoded TAF; missing TAFs are normal for smaller fields."""
        icao = icao.upper().strip()
        cache_key = f"taf:{icao}"
        cached, hit = self.cache.get(cache_key)
        if hit:
            return cached

        taf = None
        if self.apis['checkwx']['api_key']:
            try:
                headers = {'X-API-Key': self.apis['checkwx']['api_key']}
                data = self._get_json(f"{self.apis['checkwx']['base_url']}/taf/{icao}/decoded", headers=headers)
                item = _checkwx_item(data)
                if item is not None:
                    taf = taf_from_checkwx(item)
                    logger.info(f"✅ Got TAF from CheckWX for {icao}")
            except FETCH_ERRORS as e:
                logger.warning(f"CheckWX TAF failed for {icao}: {e}")

        if taf is None:
            try:
                data = self._get_json(f"{self.apis['aviationweather']['base_url']}/taf",
                                      params={'ids': icao, 'format': 'json'})
                if isinstance(data, list) and data:
                    taf = taf_from_awc(data[0])
                    logger.info(f"✅ Got TAF from AWC for {icao}")
            except FETCH_ERRORS as e:
                logger.warning(f"AWC TAF failed for {icao}: {e}")

        if taf is None:
            logger.info(f"No TAF available for {icao}")
            return None
        self.cache.set(cache_key, taf, Config.TAF_CACHE_TIMEOUT)
        return taf

    def get_pireps(self, icao: str, distance_nm: int = Config.PIREP_RADIUS_NM) -> List[PilotReport]:
        """PIREPs within ``distance_nm`` of the airport"""
        icao = icao.upper().strip()
        cache_key = f"pirep:{icao};{distance_nm}"
        cached, hit = self.cache.get(cache_key)
        if hit:
            return cached
        try:
            data = self._get_json(f"{self.apis['aviationweather']['base_url']}/pirep",
                                  params={'id': icao, 'distance': distance_nm, 'format': 'json'})
            reports = [pirep_from_awc(item) for item in data] if isinstance(data, list) else []
        except FETCH_ERRORS as e:
            logger.warning(f"PIREP failed for {icao}: {e}")
            return []
        self.cache.set(cache_key, reports, Config.HAZARD_CACHE_TIMEOUT)
        return reports

    def get_hazards(self, near: Optional[Tuple[float, float]] = None,
                    radius_nm: int = Config.HAZARD_RADIUS_NM) -> List[HazardFeature]:
        """Active SIGMET/AIRMET areas, optionally limited to ``radius_nm`` of ``near`` (lon, lat)."""
        cache_key = "airsigmet:all"
        hazards, hit = self.cache.get(cache_key)
        if not hit:
            try:
                data = self._get_json(f"{self.apis['aviationweather']['base_url']}/airsigmet",
                                      params={'format': 'json'})
                hazards = [hazard_from_awc(item) for item in data] if isinstance(data, list) else []
            except FETCH_ERRORS as e:
                logger.warning(f"SIGMET/AIRMET failed: {e}")
                return []
            self.cache.set(cache_key, hazards, Config.HAZARD_CACHE_TIMEOUT)

        if near is None:
            return list(hazards)
        lon, lat = near
        return [h for h in hazards
                if h.centroid is None or haversine_nm(lat, lon, h.centroid[1], h.centroid[0]) <= radius_nm]

    def build_risk_inputs(self, icao: str, now: Optional[datetime] = None,
                          airport_coords: Optional[Tuple[float, float]] = None) -> RiskInputs:
        """Collect everything the risk engine needs for one airport at ``now``."""
        icao = icao.upper().strip()
        now = parse_timestamp(now) if now is not None else datetime.now(timezone.utc)

        metar = self.get_metar(icao)
        history = self.get_metars(icao, hours=Config.METAR_HISTORY_HOURS) if metar else []
        previous = next((m for m in history
                         if m.observed and metar.observed and m.observed < metar.observed), None)

        return RiskInputs(
            icao=icao,
            now=now,
            metar=metar,
            taf=self.get_taf(icao),
            hazards=tuple(self.get_hazards(near=airport_coords)),
            pireps=tuple(self.get_pireps(icao)),
            previous_metar=previous,
        )


# Airport data management
class AirportDataManager:
    def __init__(self, cache: Optional[WeatherCache] = None):
        self.cache = cache if cache is not None else InMemoryTTLCache()

    def get_airport_info(self, code: str) -> Dict[str, Any]:
        """Get airport information from OpenFlights, with a fallback record"""
        code = code.upper().strip()
        cache_key = f"airport:{code}"
        cached, hit = self.cache.get(cache_key)
        if hit:
            return cached

        airport_info = self._fetch_from_openflights(code) or self._create_fallback_info(code)
        self.cache.set(cache_key, airport_info, Config.AIRPORT_CACHE_TIMEOUT)
        return airport_info

    def get_airport_coordinates(self, code: str) -> Optional[Tuple[float, float]]:
        """(lon, lat) of the airport, or None when unknown."""
        info = self.get_airport_info(code)
        if info.get('latitude') is None or info.get('longitude') is None:
            return None
        return info['longitude'], info['latitude']

    def _fetch_from_openflights(self, code: str) -> Optional[Dict[str, Any]]:
        """Fetch from OpenFlights database"""
        try:
            response = requests.get(Config.OPENFLIGHTS_AIRPORTS_URL, timeout=Config.AIRPORT_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"OpenFlights lookup failed for {code}: {e}")
            return None

        for parts in csv.reader(response.text.splitlines()):
            if len(parts) < 9:
                continue
            iata, icao = parts[4], parts[5]
            if code not in (icao, iata):
                continue
            return {
                'icao': icao,
                'iata': iata if iata != '\\N' else '',
                'name': parts[1],
                'city': parts[2],
                'country': parts[3],
                'latitude': _float_or_none(parts[6]),
                'longitude': _float_or_none(parts[7]),
                'elevation_ft': _int_or_none(parts[8]),
                'source': 'OpenFlights',
            }
        return None

    def _create_fallback_info(self, code: str) -> Dict[str, Any]:
        """Create fallback airport info"""
        return {
            'icao': code,
            'iata': '',
            'name': f'Airport {code}',
            'city': 'Unknown',
            'country': 'Unknown',
            'latitude': None,
            'longitude': None,
            'elevation_ft': None,
            'source': 'Fallback',
        }
