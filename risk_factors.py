# risk_factors.py - Per-dimension weather risk assessors
"""
Each assessor scores one weather dimension of a RiskInputs snapshot on a
0-100 scale and reports a confidence penalty when its underlying data is
missing. Assessors never raise for absent fields.

Severity convention shared by all factors:
    score >= 70 -> high, score >= 40 -> moderate, otherwise low
"""

import re
from datetime import timedelta
from typing import Iterable, List, Optional, Sequence

from models import (
    CloudLayer,
    DecodedMetar,
    FactorDetails,
    FactorName,
    RiskInputs,
    Severity,
    TafPeriod,
    WeatherRiskFactorResult,
)

# Flight category ordering, best to worst
CATEGORY_RANK = {'VFR': 0, 'MVFR': 1, 'IFR': 2, 'LIFR': 3}

WEATHER_CODES = {
    'MI', 'BC', 'PR', 'DR', 'BL', 'SH', 'TS', 'FZ',  # Descriptors
    'DZ', 'RA', 'SN', 'SG', 'IC', 'PL', 'GR', 'GS',  # Precipitation
    'BR', 'FG', 'FU', 'VA', 'DU', 'SA', 'HZ', 'PO',  # Obscuration
    'SQ', 'FC', 'SS', 'DS',                          # Other
}

MOISTURE_PATTERN = re.compile(r'(RA|DZ|SN|SG|PL|FG|BR)')
TREND_LOOKAHEAD = timedelta(hours=12)


def severity_for(score: int) -> Severity:
    if score >= 70:
        return Severity.HIGH
    if score >= 40:
        return Severity.MODERATE
    return Severity.LOW


def _clamp(score) -> int:
    return max(0, min(100, int(round(score))))


def _build(name: FactorName, score, penalty: float, messages: List[str],
           details: Optional[FactorDetails], sources: List[str]) -> WeatherRiskFactorResult:
    score = _clamp(score)
    return WeatherRiskFactorResult(
        name=name,
        score=score,
        confidence_penalty=max(0.0, min(1.0, penalty)),
        severity=severity_for(score),
        messages=tuple(messages),
        details=details,
        sources=tuple(sources),
    )


# ---------------------------------------------------------------------------
# Shared METAR helpers
# ---------------------------------------------------------------------------

def is_weather_token(token: str) -> bool:
    """True for present-weather groups such as TSRA, +SHRA, -FZDZ, VCTS, BR."""
    t = token.upper().lstrip('+-')
    if t.startswith('VC'):
        t = t[2:]
    if len(t) < 2 or len(t) > 8 or len(t) % 2 != 0:
        return False
    return all(t[i:i + 2] in WEATHER_CODES for i in range(0, len(t), 2))


def weather_tokens(raw_text: Optional[str], has_station: bool = True) -> List[str]:
    """Present-weather groups of a raw METAR/TAF body, remarks excluded.

    TAF change groups carry no station identifier; pass ``has_station=False``.
    """
    if not raw_text:
        return []
    body = raw_text.upper().split(' RMK ')[0]
    tokens = body.split()
    while tokens and tokens[0] in ('METAR', 'SPECI', 'TAF', 'AMD', 'COR'):
        tokens = tokens[1:]
    if has_station:
        tokens = tokens[1:]
    return [t for t in tokens if is_weather_token(t)]


def ceiling_ft(clouds: Iterable[CloudLayer]) -> Optional[int]:
    """Base of the lowest broken, overcast or vertical-visibility layer."""
    lowest = None
    for layer in clouds or ():
        if layer.code and layer.code.startswith(('BKN', 'OVC', 'VV')) and layer.feet is not None:
            lowest = layer.feet if lowest is None else min(lowest, layer.feet)
    return lowest


def derive_flight_category(visibility_miles: Optional[float], ceiling: Optional[int]) -> Optional[str]:
    if visibility_miles is None and ceiling is None:
        return None
    vis = visibility_miles if visibility_miles is not None else 99.0
    ceil = ceiling if ceiling is not None else 99999
    if vis < 1 or ceil < 500:
        return 'LIFR'
    if vis < 3 or ceil < 1000:
        return 'IFR'
    if vis <= 5 or ceil <= 3000:
        return 'MVFR'
    return 'VFR'


def category_of(report) -> Optional[str]:
    """Flight category of a METAR or TAF period, derived if the provider omitted it."""
    if report is None:
        return None
    if report.flight_category in CATEGORY_RANK:
        return report.flight_category
    return derive_flight_category(report.visibility_miles, ceiling_ft(report.clouds))


def _effective_wind(metar: DecodedMetar) -> Optional[int]:
    if metar.wind is None or metar.wind.speed_kts is None:
        return None
    return max(metar.wind.speed_kts, metar.wind.gust_kts or 0)


def _has_any(tokens: Sequence[str], codes: Iterable[str]) -> bool:
    return any(code in token for token in tokens for code in codes)


# ---------------------------------------------------------------------------
# Assessors
# ---------------------------------------------------------------------------

class RiskFactorAssessor:
    """Scores one weather dimension. Subclasses implement ``assess``."""

    name: FactorName

    def assess(self, inputs: RiskInputs) -> WeatherRiskFactorResult:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}({self.name.value})"


class TemperatureAssessor(RiskFactorAssessor):
    """Structural icing with moisture on the cold side, density altitude on the hot side."""

    name = FactorName.TEMPERATURE

    @staticmethod
    def _has_moisture(metar: DecodedMetar, spread: Optional[float]) -> bool:
        from_wx = any(MOISTURE_PATTERN.search(t) for t in weather_tokens(metar.raw_text))
        near_saturated = spread is not None and spread <= 2
        bkn_ovc = any(layer.code.startswith(('BKN', 'OVC')) for layer in metar.clouds if layer.code)
        return from_wx or near_saturated or bkn_ovc

    def assess(self, inputs: RiskInputs) -> WeatherRiskFactorResult:
        metar = inputs.metar
        temp = metar.temperature_c if metar else None
        dew = metar.dewpoint_c if metar else None
        messages: List[str] = []
        sources: List[str] = []

        if temp is None:
            messages.append("Temperature not reported")
            return _build(self.name, 0, 0.2, messages, None, sources)

        sources.append('metar.temperature')
        if dew is not None:
            sources.append('metar.dewpoint')
        spread = temp - dew if dew is not None else None
        moisture = self._has_moisture(metar, spread)

        score = 0
        icing = False
        if moisture and -10 <= temp <= 0:
            score, icing = 80, True
            messages.append("Temperature well below freezing with moisture - significant icing risk")
        elif moisture and -20 <= temp < -10:
            score, icing = 70, True
            messages.append("Subfreezing temperature with moisture - icing conditions likely")
        elif moisture and 0 < temp <= 3:
            score, icing = 55, True
            messages.append("Temperature near freezing with moisture - icing possible")
        elif moisture and temp <= 0:
            score, icing = 70, True
            messages.append("Subfreezing temperature with moisture - freezing conditions likely")
        elif temp <= 0 and spread is not None and spread <= 3:
            score = 50
            messages.append("Subfreezing, near-saturated air - ground icing and frost risk")

        if score == 0 and temp <= 0:
            score = 30
            messages.append("Subfreezing temperature - ensure appropriate de/anti-icing procedures")

        if temp >= 40:
            score = max(score, 70)
            messages.append("Extreme heat - density altitude and brake energy limits may significantly affect performance")
        elif temp >= 35:
            score = max(score, 55)
            messages.append("Very hot conditions - density altitude may reduce climb and increase takeoff distance")
        elif temp >= 30:
            score = max(score, 35)
            messages.append("Hot conditions - performance margin reduced due to higher density altitude")

        severity = severity_for(score)
        if icing and severity is Severity.HIGH:
            impact = ("Conditions support significant structural icing in clouds/precip; "
                      "consider routing or altitude changes.")
        elif icing:
            impact = "Icing possible; use anti-ice systems and monitor closely in clouds and precipitation."
        elif temp >= 30:
            impact = ("High temperature increases density altitude and may require longer "
                      "takeoff distances or reduced payload.")
        else:
            impact = "Temperature within normal operational range for most corporate operations."

        actual = f"{temp:.1f} °C" if dew is None else f"{temp:.1f} °C / dewpoint {dew:.1f} °C"
        details = FactorDetails(
            actual_value=actual,
            threshold="Icing: +3°C to -20°C with moisture | Heat: ≥30°C performance impact",
            impact=impact,
        )
        return _build(self.name, score, 0.0, messages, details, sources)


class SurfaceWindAssessor(RiskFactorAssessor):
    """Sustained/gust strength, gust factor and variable direction."""

    name = FactorName.SURFACE_WIND

    BANDS = ((40, 90), (30, 75), (25, 60), (20, 45), (15, 25), (10, 10))

    def assess(self, inputs: RiskInputs) -> WeatherRiskFactorResult:
        wind = inputs.metar.wind if inputs.metar else None
        if wind is None or wind.speed_kts is None:
            return _build(self.name, 0, 0.15, ["Surface wind not reported"], None, [])

        speed = wind.speed_kts
        gust = wind.gust_kts
        effective = max(speed, gust or 0)
        messages: List[str] = []

        score = 0
        for limit, band_score in self.BANDS:
            if effective >= limit:
                score = band_score
                break

        if gust is not None and gust - speed >= 15:
            score += 10
            messages.append(f"Gust factor {gust - speed} kt - expect mechanical turbulence and wind shear")
        if wind.variable and effective >= 10:
            score += 5
            messages.append("Variable wind direction - crosswind component unpredictable")

        if effective >= 30:
            messages.insert(0, f"Strong surface wind {self._describe(wind)}")
        elif effective >= 20:
            messages.insert(0, f"Gusty/strong surface wind {self._describe(wind)}")
        elif speed == 0 and not gust:
            messages.insert(0, "Wind calm")
        else:
            messages.insert(0, f"Surface wind {self._describe(wind)}")

        if effective >= 30:
            impact = "Crosswind and gust limits likely exceeded on some runways; review aircraft demonstrated crosswind."
        elif effective >= 20:
            impact = "Gusty conditions increase workload on takeoff and landing; add gust increment to approach speed."
        else:
            impact = "Surface wind within normal operating limits."

        details = FactorDetails(
            actual_value=self._describe(wind),
            threshold="15 kt low | 20 kt moderate | 30 kt high | 40 kt severe",
            impact=impact,
        )
        return _build(self.name, score, 0.0, messages, details, ['metar.wind'])

    @staticmethod
    def _describe(wind) -> str:
        if wind.variable or wind.degrees is None:
            text = f"VRB {wind.speed_kts} kt"
        else:
            text = f"{wind.degrees:03d}° {wind.speed_kts} kt"
        if wind.gust_kts:
            text += f" gusting {wind.gust_kts} kt"
        return text


class VisibilityAssessor(RiskFactorAssessor):
    name = FactorName.VISIBILITY

    CATEGORY_SCORES = {'LIFR': 85, 'IFR': 65, 'MVFR': 40, 'VFR': 10}

    def assess(self, inputs: RiskInputs) -> WeatherRiskFactorResult:
        metar = inputs.metar
        miles = metar.visibility_miles if metar else None

        if miles is not None:
            if miles < 1:
                score = 90
            elif miles < 3:
                score = 70
            elif miles < 5:
                score = 45
            elif miles < 7:
                score = 25
            else:
                score = 0

            if miles < 1:
                message = f"Very low visibility {miles:.1f} SM"
                impact = "IFR operations required - significant visual restriction affecting all phases"
            elif score > 0:
                message = f"Reduced visibility {miles:.1f} SM"
                impact = ("Marginal VFR/IFR conditions - visual navigation and pattern work restricted"
                          if miles < 3 else
                          "Reduced visibility affects visual navigation and approach procedures")
            else:
                message = f"Visibility {miles:.1f} SM"
                impact = "Visibility within acceptable limits for visual operations"

            details = FactorDetails(f"{miles:.1f} SM", "1 SM severe | 3 SM high | 5 SM moderate", impact)
            return _build(self.name, score, 0.0, [message], details, ['metar.visibility'])

        category = metar.flight_category if metar else None
        if category in self.CATEGORY_SCORES:
            details = FactorDetails(category, "Based on flight category",
                                    "Visibility estimated from reported flight category")
            return _build(self.name, self.CATEGORY_SCORES[category], 0.05,
                          [f"{category}: visibility estimated from flight category"],
                          details, ['metar.flight_category'])

        return _build(self.name, 0, 0.2, ["Visibility not reported"], None, [])


class CeilingCloudsAssessor(RiskFactorAssessor):
    name = FactorName.CEILING_CLOUDS

    CATEGORY_SCORES = {'LIFR': 85, 'IFR': 70, 'MVFR': 45, 'VFR': 10}

    def assess(self, inputs: RiskInputs) -> WeatherRiskFactorResult:
        metar = inputs.metar
        if metar is None:
            return _build(self.name, 0, 0.2, ["Ceiling not reported"], None, [])

        lowest = ceiling_ft(metar.clouds)
        convective = [layer for layer in metar.clouds
                      if layer.cloud_type in ('CB', 'TCU') or layer.code.endswith(('CB', 'TCU'))]
        messages: List[str] = []

        if lowest is None and not metar.clouds and not self._sky_clear(metar.raw_text):
            category = metar.flight_category
            if category in self.CATEGORY_SCORES:
                details = FactorDetails(category, "Based on flight category",
                                        "Ceiling estimated from reported flight category")
                return _build(self.name, self.CATEGORY_SCORES[category], 0.05,
                              [f"{category}: ceiling estimated from flight category"],
                              details, ['metar.flight_category'])
            return _build(self.name, 0, 0.2, ["Ceiling not reported"], None, [])

        score = 0
        if lowest is not None:
            if lowest < 500:
                score = 90
                messages.append(f"Very low ceiling {lowest} ft AGL")
                impact = "Critical ceiling - severely restricts operations, IFR approach required"
            elif lowest < 1000:
                score = 75
                messages.append(f"Low ceiling {lowest} ft AGL")
                impact = "Low ceiling requires instrument approach and may prevent VFR traffic pattern work"
            elif lowest < 2000:
                score = 55
                messages.append(f"Low ceiling {lowest} ft AGL")
                impact = "Marginal ceiling affects VFR operations and traffic pattern altitude"
            elif lowest < 3000:
                score = 30
                messages.append(f"Low ceiling {lowest} ft AGL")
                impact = "Ceiling adequate for most operations; VFR pattern may be restricted"
            else:
                messages.append(f"Ceiling {lowest} ft AGL")
                impact = "Ceiling adequate for normal operations"
            actual = f"{lowest} ft AGL"
        else:
            messages.append("No ceiling")
            impact = "No ceiling restrictions"
            actual = "No ceiling"

        if convective:
            score = max(score, 60)
            kinds = sorted({layer.cloud_type or ('CB' if layer.code.endswith('CB') else 'TCU')
                            for layer in convective})
            messages.append(f"Convective cloud reported ({', '.join(kinds)})")
            impact = "Convective cloud in the terminal area - expect turbulence, wind shear and deviations"

        details = FactorDetails(actual, "500ft severe | 1000ft high | 2000ft moderate", impact)
        return _build(self.name, score, 0.0, messages, details, ['metar.clouds'])

    @staticmethod
    def _sky_clear(raw_text: str) -> bool:
        tokens = (raw_text or '').upper().split()
        return any(t in ('SKC', 'CLR', 'NSC', 'NCD', 'CAVOK') for t in tokens)


class PrecipitationAssessor(RiskFactorAssessor):
    name = FactorName.PRECIPITATION

    def assess(self, inputs: RiskInputs) -> WeatherRiskFactorResult:
        raw = inputs.metar.raw_text if inputs.metar else ''
        if not raw:
            return _build(self.name, 0, 0.15, ["Precipitation data unavailable"], None, [])

        tokens = weather_tokens(raw)
        messages: List[str] = []
        observed: List[str] = []
        score = 0

        freezing = _has_any(tokens, ('FZRA', 'FZDZ', 'PL'))
        thunder = _has_any(tokens, ('TS',)) or any(t.startswith('+') and 'RA' in t for t in tokens)
        hail = _has_any(tokens, ('GR', 'GS'))
        snow = _has_any(tokens, ('SN', 'SG'))
        fog = _has_any(tokens, ('FG', 'BR'))
        rain = _has_any(tokens, ('RA', 'DZ'))

        if freezing:
            score = max(score, 80)
            messages.append("Freezing precipitation reported")
            observed.append("Freezing Rain")
        if hail:
            score = max(score, 75)
            messages.append("Hail reported")
            observed.append("Hail")
        if thunder:
            score = max(score, 70)
            messages.append("Thunderstorms or heavy rain in vicinity")
            observed.append("Thunderstorms")
        if snow:
            score = max(score, 70 if any(t.startswith('+') and 'SN' in t for t in tokens) else 60)
            messages.append("Snow in vicinity")
            observed.append("Snow")
        if fog:
            score = max(score, 50)
            messages.append("Fog/mist reducing visibility")
            observed.append("Fog/Mist")
        if rain and not (freezing or thunder):
            score = max(score, 25)
            messages.append("Rain or drizzle reported")
            observed.append("Rain")

        if score == 0:
            messages.append("No significant precipitation")

        if freezing:
            impact = "Icing hazard - severe structural risk, may require immediate diversion"
        elif thunder:
            impact = "Thunderstorm activity creates turbulence, wind shear, and lightning hazards"
        elif snow:
            impact = "Snow accumulation affects runway braking action and visibility"
        elif fog:
            impact = "Fog and mist significantly reduce visibility for visual operations"
        else:
            impact = "No precipitation hazards affecting operations"

        details = FactorDetails(
            actual_value=', '.join(observed) if observed else "None",
            threshold="FZRA severe | TS high | SN/FG moderate",
            impact=impact,
        )
        return _build(self.name, score, 0.0, messages, details, ['metar.raw_text'])


class TrendStabilityAssessor(RiskFactorAssessor):
    """Deterioration between consecutive METARs and against the TAF outlook."""

    name = FactorName.TREND_STABILITY

    OUTLOOK_SCORES = {'LIFR': 70, 'IFR': 50, 'MVFR': 25, 'VFR': 0}

    def assess(self, inputs: RiskInputs) -> WeatherRiskFactorResult:
        metar, previous, taf = inputs.metar, inputs.previous_metar, inputs.taf
        messages: List[str] = []
        sources: List[str] = []
        have_delta = metar is not None and previous is not None
        have_outlook = taf is not None and bool(taf.forecast)

        if not have_delta and not have_outlook:
            return _build(self.name, 0, 0.15, ["No trend data available"], None, sources)

        delta_score = 0
        if have_delta:
            sources.append('metar.history')
            delta_score = self._metar_delta(previous, metar, messages)

        outlook_score = 0
        if have_outlook:
            sources.append('taf.forecast')
            outlook_score = self._taf_outlook(taf.forecast, category_of(metar), inputs.now, messages)

        score = max(delta_score, outlook_score)
        if score == 0:
            messages.append("Conditions stable")

        penalty = 0.0 if have_delta and have_outlook else 0.05
        if score >= 70:
            impact = "Rapid deterioration expected - plan alternates and monitor updates closely"
        elif score >= 40:
            impact = "Conditions trending worse - review timing and fuel for holding or diversion"
        else:
            impact = "No significant change expected"
        details = FactorDetails(
            actual_value=f"delta {delta_score} / outlook {outlook_score}",
            threshold="Category drop 25/step | TAF LIFR 70, IFR 50, MVFR 25 | TS 60",
            impact=impact,
        )
        return _build(self.name, score, penalty, messages, details, sources)

    @staticmethod
    def _metar_delta(previous: DecodedMetar, current: DecodedMetar, messages: List[str]) -> int:
        score = 0
        prev_cat, cur_cat = category_of(previous), category_of(current)
        if prev_cat and cur_cat:
            steps = CATEGORY_RANK[cur_cat] - CATEGORY_RANK[prev_cat]
            if steps > 0:
                score = max(score, 25 * steps)
                messages.append(f"Flight category deteriorated {prev_cat} → {cur_cat}")

        prev_wind = _effective_wind(previous)
        cur_wind = _effective_wind(current)
        if prev_wind is not None and cur_wind is not None and cur_wind - prev_wind >= 10:
            score = max(score, 20)
            messages.append(f"Wind increased {prev_wind} → {cur_wind} kt")

        if previous.visibility_miles is not None and current.visibility_miles is not None \
                and previous.visibility_miles - current.visibility_miles >= 2:
            score = max(score, 20)
            messages.append(f"Visibility dropped {previous.visibility_miles:g} → {current.visibility_miles:g} SM")

        prev_ceil, cur_ceil = ceiling_ft(previous.clouds), ceiling_ft(current.clouds)
        if prev_ceil is not None and cur_ceil is not None and prev_ceil - cur_ceil >= 1000:
            score = max(score, 20)
            messages.append(f"Ceiling lowered {prev_ceil} → {cur_ceil} ft")
        return score

    def _taf_outlook(self, periods: Sequence[TafPeriod], current_cat: Optional[str], now,
                     messages: List[str]) -> int:
        horizon = now + TREND_LOOKAHEAD
        current_rank = CATEGORY_RANK.get(current_cat, 0)
        score = 0
        worst_cat = None
        thunder = False
        temporary_worse = False

        for period in periods:
            if period.valid_to is not None and period.valid_to < now:
                continue
            if period.valid_from is not None and period.valid_from > horizon:
                continue
            cat = category_of(period)
            if cat is not None and (worst_cat is None or CATEGORY_RANK[cat] > CATEGORY_RANK[worst_cat]):
                worst_cat = cat
            if any('TS' in t for t in weather_tokens(period.raw_text, has_station=False)):
                thunder = True
            if period.change_indicator in ('TEMPO', 'PROB') and cat is not None \
                    and CATEGORY_RANK[cat] > current_rank:
                temporary_worse = True

        if worst_cat is not None and CATEGORY_RANK[worst_cat] > current_rank:
            score = self.OUTLOOK_SCORES[worst_cat]
            messages.append(f"TAF forecasts {worst_cat} conditions within 12 hours")
        if thunder:
            score = max(score, 60)
            messages.append("Thunderstorms forecast in TAF")
        if temporary_worse:
            score += 10
            messages.append("Temporary deterioration groups in TAF")
        return score


FACTOR_ASSESSORS = (
    SurfaceWindAssessor(),
    VisibilityAssessor(),
    CeilingCloudsAssessor(),
    PrecipitationAssessor(),
    TrendStabilityAssessor(),
    TemperatureAssessor(),
)


def assess_all(inputs: RiskInputs,
               assessors: Sequence[RiskFactorAssessor] = FACTOR_ASSESSORS) -> List[WeatherRiskFactorResult]:
    """Run every registered assessor against one snapshot, in registry order."""
    return [assessor.assess(inputs) for assessor in assessors]
