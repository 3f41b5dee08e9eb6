# models.py - Weather records and risk result types shared by the engine
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class FactorName(str, Enum):
    SURFACE_WIND = 'surface_wind'
    VISIBILITY = 'visibility'
    CEILING_CLOUDS = 'ceiling_clouds'
    PRECIPITATION = 'precipitation'
    TREND_STABILITY = 'trend_stability'
    TEMPERATURE = 'temperature'


class Phase(str, Enum):
    PREFLIGHT = 'preflight'
    PLANNING = 'planning'
    DEPARTURE = 'departure'
    ENROUTE = 'enroute'
    ARRIVAL = 'arrival'


class Severity(str, Enum):
    LOW = 'low'
    MODERATE = 'moderate'
    HIGH = 'high'


class Tier(str, Enum):
    ON_TRACK = 'on_track'
    MONITOR = 'monitor'
    HIGH_DISRUPTION = 'high_disruption'


class Status(str, Enum):
    OK = 'ok'
    INSUFFICIENT_DATA = 'insufficient_data'


class BriefingSeverity(str, Enum):
    NONE = 'none'
    LOW = 'low'
    MODERATE = 'moderate'
    HIGH = 'high'
    EXTREME = 'extreme'


def to_jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, enums and datetimes into JSON types."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    return value


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


# ---------------------------------------------------------------------------
# Decoded weather (supplied by the provider client)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CloudLayer(_Serializable):
    code: str  # FEW/SCT/BKN/OVC, optionally suffixed (OVC CB)
    feet: Optional[int] = None
    cloud_type: Optional[str] = None  # CB / TCU


@dataclass(frozen=True)
class WindData(_Serializable):
    degrees: Optional[int] = None
    speed_kts: Optional[int] = None
    gust_kts: Optional[int] = None
    variable: bool = False


@dataclass(frozen=True)
class DecodedMetar(_Serializable):
    icao: str
    raw_text: str = ''
    observed: Optional[datetime] = None
    temperature_c: Optional[float] = None
    dewpoint_c: Optional[float] = None
    wind: Optional[WindData] = None
    visibility_miles: Optional[float] = None
    clouds: Tuple[CloudLayer, ...] = ()
    flight_category: Optional[str] = None


@dataclass(frozen=True)
class TafPeriod(_Serializable):
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    change_indicator: Optional[str] = None  # FM / BECMG / TEMPO / PROB
    raw_text: str = ''
    wind: Optional[WindData] = None
    visibility_miles: Optional[float] = None
    clouds: Tuple[CloudLayer, ...] = ()
    flight_category: Optional[str] = None


@dataclass(frozen=True)
class DecodedTaf(_Serializable):
    icao: str
    raw_text: str = ''
    issued: Optional[datetime] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    forecast: Tuple[TafPeriod, ...] = ()


@dataclass(frozen=True)
class HazardFeature(_Serializable):
    """A SIGMET/AIRMET style area advisory.

    ``severity`` is one of extreme, high, moderate, low, info, unknown.
    ``centroid`` is a (lon, lat) pair, GeoJSON order.
    """
    kind: str
    severity: str = 'unknown'
    name: Optional[str] = None
    altitude_lower_ft: Optional[int] = None
    altitude_upper_ft: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    centroid: Optional[Tuple[float, float]] = None
    raw_text: str = ''


@dataclass(frozen=True)
class PilotReport(_Serializable):
    """PIREP; turbulence/icing are extreme, severe, moderate, light or unknown."""
    turbulence: Optional[str] = None
    icing: Optional[str] = None
    altitude_ft_msl: Optional[int] = None
    raw_text: str = ''
    observed: Optional[datetime] = None


@dataclass(frozen=True)
class RiskInputs(_Serializable):
    icao: str
    now: datetime
    metar: Optional[DecodedMetar] = None
    taf: Optional[DecodedTaf] = None
    hazards: Tuple[HazardFeature, ...] = ()
    pireps: Tuple[PilotReport, ...] = ()
    previous_metar: Optional[DecodedMetar] = None

    @property
    def datasets_available(self) -> int:
        return sum(1 for d in (self.metar, self.taf) if d is not None)


# ---------------------------------------------------------------------------
# Risk results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FactorDetails(_Serializable):
    actual_value: str
    threshold: str
    impact: str


@dataclass(frozen=True)
class WeatherRiskFactorResult(_Serializable):
    name: FactorName
    score: int
    confidence_penalty: float
    severity: Severity
    messages: Tuple[str, ...] = ()
    details: Optional[FactorDetails] = None
    sources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class WeightedFactorResult(_Serializable):
    factor: WeatherRiskFactorResult
    weight: float
    weighted_score: float

    @property
    def name(self) -> FactorName:
        return self.factor.name

    @property
    def score(self) -> int:
        return self.factor.score


@dataclass(frozen=True)
class AggregationResult(_Serializable):
    icao: str
    phase: Phase
    raw_score: int
    confidence: float
    final_score: Optional[int]
    tier: Optional[Tier]
    status: Status
    factors: Tuple[WeightedFactorResult, ...] = ()
    data_age_hours: float = 999.0
    missing_inputs_penalty: float = 0.0
    datasets_available: int = 0
    conflict_penalty: float = 0.0


@dataclass(frozen=True)
class FlightRiskCombination(_Serializable):
    origin_result: AggregationResult
    dest_result: AggregationResult
    phase: Phase
    origin_weight: float
    dest_weight: float
    combined_score: Optional[int]
    status: Status
    tier: Optional[Tier]
    confidence: float
    alert_level: str


@dataclass(frozen=True)
class HazardBriefing(_Serializable):
    summary: Optional[str]
    items: List[str] = field(default_factory=list)
    severity: BriefingSeverity = BriefingSeverity.NONE
