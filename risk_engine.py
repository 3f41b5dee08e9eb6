# risk_engine.py - Phase-weighted risk aggregation and origin/destination combination
import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from config import Config
from flight_phase import Timestamp, parse_timestamp, resolve_phase
from models import (
    AggregationResult,
    DecodedMetar,
    DecodedTaf,
    FactorName,
    FlightRiskCombination,
    Phase,
    RiskInputs,
    Status,
    Tier,
    WeatherRiskFactorResult,
    WeightedFactorResult,
)
from risk_factors import CATEGORY_RANK, FACTOR_ASSESSORS, assess_all, category_of

logger = logging.getLogger(__name__)

DEFAULT_FACTOR_WEIGHT = 0.1
MISSING_DATA_AGE_HOURS = 999.0
MISSING_INPUTS_PENALTY = 0.15
CONFLICT_PENALTY = 0.1
INSUFFICIENT_CONFIDENCE = 0.15
COMBINED_CONFIDENCE_FACTOR = 0.95

# Factors absent from a phase row (temperature) fall back to DEFAULT_FACTOR_WEIGHT
PHASE_WEIGHTS: Dict[Phase, Dict[FactorName, float]] = {
    Phase.DEPARTURE: {
        FactorName.SURFACE_WIND: 0.35,
        FactorName.VISIBILITY: 0.25,
        FactorName.CEILING_CLOUDS: 0.15,
        FactorName.PRECIPITATION: 0.15,
        FactorName.TREND_STABILITY: 0.10,
    },
    Phase.ARRIVAL: {
        FactorName.SURFACE_WIND: 0.20,
        FactorName.VISIBILITY: 0.25,
        FactorName.CEILING_CLOUDS: 0.30,
        FactorName.PRECIPITATION: 0.15,
        FactorName.TREND_STABILITY: 0.10,
    },
    Phase.PLANNING: {
        FactorName.SURFACE_WIND: 0.20,
        FactorName.VISIBILITY: 0.20,
        FactorName.CEILING_CLOUDS: 0.25,
        FactorName.PRECIPITATION: 0.25,
        FactorName.TREND_STABILITY: 0.10,
    },
    Phase.PREFLIGHT: {
        FactorName.SURFACE_WIND: 0.20,
        FactorName.VISIBILITY: 0.25,
        FactorName.CEILING_CLOUDS: 0.25,
        FactorName.PRECIPITATION: 0.20,
        FactorName.TREND_STABILITY: 0.10,
    },
    Phase.ENROUTE: {
        FactorName.SURFACE_WIND: 0.20,
        FactorName.VISIBILITY: 0.15,
        FactorName.CEILING_CLOUDS: 0.10,
        FactorName.PRECIPITATION: 0.30,
        FactorName.TREND_STABILITY: 0.25,
    },
}

# (origin, destination)
ORIGIN_DEST_WEIGHTS: Dict[Phase, tuple] = {
    Phase.PREFLIGHT: (0.50, 0.50),
    Phase.PLANNING: (0.60, 0.40),
    Phase.DEPARTURE: (0.75, 0.25),
    Phase.ENROUTE: (0.30, 0.70),
    Phase.ARRIVAL: (0.25, 0.75),
}

# Data age upper bound (hours) -> base confidence
CONFIDENCE_BUCKETS = ((3, 1.0), (6, 0.95), (12, 0.85), (24, 0.7), (36, 0.5))
STALE_CONFIDENCE = 0.2


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def map_score_to_tier(score: int) -> Tier:
    if score <= 30:
        return Tier.ON_TRACK
    if score <= 60:
        return Tier.MONITOR
    return Tier.HIGH_DISRUPTION


def base_confidence(data_age_hours: float) -> float:
    for limit, confidence in CONFIDENCE_BUCKETS:
        if data_age_hours <= limit:
            return confidence
    return STALE_CONFIDENCE


def compute_data_age_hours(metar: Optional[DecodedMetar], taf: Optional[DecodedTaf],
                           now: datetime) -> float:
    """Hours since the newer of METAR observation and TAF issue time; 999 when neither is known."""
    stamps = [parse_timestamp(ts) for ts in (metar.observed if metar else None, taf.issued if taf else None)
              if ts]
    if not stamps:
        return MISSING_DATA_AGE_HOURS
    age = (parse_timestamp(now) - max(stamps)).total_seconds() / 3600.0
    return max(0.0, age)


def detect_metar_taf_conflict(metar: Optional[DecodedMetar], taf: Optional[DecodedTaf],
                              now: datetime) -> bool:
    """True when the TAF period in force disagrees with the METAR by two or more categories."""
    if metar is None or taf is None:
        return False
    observed = category_of(metar)
    if observed is None:
        return False

    current = None
    for period in taf.forecast:
        if period.change_indicator in ('TEMPO', 'PROB'):
            continue
        if period.valid_from is not None and period.valid_from > now:
            continue
        if period.valid_to is not None and period.valid_to < now:
            continue
        current = period
    forecast = category_of(current)
    if forecast is None:
        return False
    return abs(CATEGORY_RANK[observed] - CATEGORY_RANK[forecast]) >= 2


def aggregate_risk(icao: str, phase: Phase, factors: Sequence[WeatherRiskFactorResult],
                   datasets_available: int, data_age_hours: float,
                   has_conflict: bool = False) -> AggregationResult:
    weights = PHASE_WEIGHTS.get(phase, {})
    weighted: List[WeightedFactorResult] = []
    weighted_total = 0.0
    sum_weights = 0.0
    for factor in factors:
        w = weights.get(factor.name, DEFAULT_FACTOR_WEIGHT)
        weighted_total += factor.score * w
        sum_weights += w
        weighted.append(WeightedFactorResult(factor=factor, weight=w, weighted_score=factor.score * w))

    raw_score = 0
    if sum_weights > 0:
        raw_score = min(100, max(0, round_half_up(weighted_total / sum_weights)))

    missing_inputs_penalty = MISSING_INPUTS_PENALTY if datasets_available < 2 else 0.0
    conflict_penalty = CONFLICT_PENALTY if has_conflict else 0.0
    confidence = base_confidence(data_age_hours) - missing_inputs_penalty - conflict_penalty
    confidence = round(max(0.0, min(1.0, confidence)), 4)

    status = Status.OK
    final_score: Optional[int] = raw_score
    tier: Optional[Tier] = map_score_to_tier(raw_score)
    if confidence < INSUFFICIENT_CONFIDENCE or datasets_available < 1:
        status = Status.INSUFFICIENT_DATA
        final_score = None
        tier = None

    return AggregationResult(
        icao=icao,
        phase=phase,
        raw_score=raw_score,
        confidence=confidence,
        final_score=final_score,
        tier=tier,
        status=status,
        factors=tuple(weighted),
        data_age_hours=round(data_age_hours, 2),
        missing_inputs_penalty=missing_inputs_penalty,
        datasets_available=datasets_available,
        conflict_penalty=conflict_penalty,
    )


def evaluate_airport_risk(inputs: RiskInputs, departure: Timestamp = None, arrival: Timestamp = None,
                          departure_window: timedelta = Config.DEPARTURE_WINDOW,
                          assessors=FACTOR_ASSESSORS) -> AggregationResult:
    """Score one airport snapshot for the phase derived from the schedule at ``inputs.now``."""
    inputs = replace(inputs, now=parse_timestamp(inputs.now))
    phase = resolve_phase(departure, arrival, inputs.now, departure_window)
    factors = assess_all(inputs, assessors)
    data_age_hours = compute_data_age_hours(inputs.metar, inputs.taf, inputs.now)
    conflict = detect_metar_taf_conflict(inputs.metar, inputs.taf, inputs.now)

    result = aggregate_risk(inputs.icao, phase, factors, inputs.datasets_available,
                            data_age_hours, conflict)
    logger.info(f"Risk {inputs.icao} [{phase.value}]: raw={result.raw_score} "
                f"confidence={result.confidence} status={result.status.value}")
    return result


def combine_flight_risk(origin: AggregationResult, destination: AggregationResult,
                        phase: Optional[Phase] = None) -> FlightRiskCombination:
    """Blend origin and destination results with the phase's origin/destination weights.

    If either side has insufficient data the combination is insufficient too.
    """
    if origin.phase != destination.phase:
        raise ValueError(f"Origin phase {origin.phase.value} does not match "
                         f"destination phase {destination.phase.value}")
    phase = phase or origin.phase
    origin_weight, dest_weight = ORIGIN_DEST_WEIGHTS.get(phase, ORIGIN_DEST_WEIGHTS[Phase.PREFLIGHT])
    confidence = round(min(origin.confidence, destination.confidence) * COMBINED_CONFIDENCE_FACTOR, 4)

    if origin.status is Status.INSUFFICIENT_DATA or destination.status is Status.INSUFFICIENT_DATA:
        return FlightRiskCombination(
            origin_result=origin,
            dest_result=destination,
            phase=phase,
            origin_weight=origin_weight,
            dest_weight=dest_weight,
            combined_score=None,
            status=Status.INSUFFICIENT_DATA,
            tier=None,
            confidence=confidence,
            alert_level='yellow',
        )

    combined = round_half_up(origin.final_score * origin_weight + destination.final_score * dest_weight)
    combined = max(0, min(100, combined))

    tiers = (origin.tier, destination.tier)
    if Tier.HIGH_DISRUPTION in tiers:
        alert_level = 'red'
    elif Tier.MONITOR in tiers:
        alert_level = 'yellow'
    else:
        alert_level = 'green'

    return FlightRiskCombination(
        origin_result=origin,
        dest_result=destination,
        phase=phase,
        origin_weight=origin_weight,
        dest_weight=dest_weight,
        combined_score=combined,
        status=Status.OK,
        tier=map_score_to_tier(combined),
        confidence=confidence,
        alert_level=alert_level,
    )


def evaluate_flight_risk(origin_inputs: RiskInputs, dest_inputs: RiskInputs,
                         departure: Timestamp = None, arrival: Timestamp = None,
                         departure_window: timedelta = Config.DEPARTURE_WINDOW) -> FlightRiskCombination:
    """Evaluate both ends of a flight against the same instant and combine them."""
    if dest_inputs.now != origin_inputs.now:
        logger.warning(f"Snapshot times differ for {origin_inputs.icao}/{dest_inputs.icao}; "
                       f"using origin time")
        dest_inputs = replace(dest_inputs, now=origin_inputs.now)
    origin = evaluate_airport_risk(origin_inputs, departure, arrival, departure_window)
    destination = evaluate_airport_risk(dest_inputs, departure, arrival, departure_window)
    return combine_flight_risk(origin, destination)
