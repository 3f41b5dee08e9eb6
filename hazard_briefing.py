# hazard_briefing.py - Plain-English briefing from hazard advisories and pilot reports
from datetime import datetime, timezone
from math import atan2, cos, radians, sin, sqrt
from typing import Dict, List, Optional, Sequence, Tuple

from flight_phase import parse_timestamp
from models import BriefingSeverity, HazardBriefing, HazardFeature, PilotReport

HAZARD_SEVERITY_RANK = {'extreme': 0, 'high': 1, 'moderate': 2, 'low': 3, 'info': 4, 'unknown': 5}
PIREP_SEVERITY_RANK = {'extreme': 0, 'severe': 1, 'moderate': 2, 'light': 3}
UNRANKED = 99
MAX_PIREPS = 3
NEARBY_NM = 10

HAZARD_TYPE_NAMES = {
    'turb': 'turbulence',
    'turbulence': 'turbulence',
    'ice': 'icing',
    'icing': 'icing',
    'ifr': 'IFR conditions',
    'mtn obscn': 'mountain obscuration',
    'mt obsc': 'mountain obscuration',
    'convective': 'thunderstorm activity',
    'ts': 'thunderstorms',
    'thunderstorm': 'thunderstorms',
    'llws': 'low level wind shear',
    'sfc wnd': 'surface winds',
    'fzlvl': 'freezing level',
}

SEVERITY_ADJECTIVES = {
    'extreme': 'severe',
    'high': 'moderate to severe',
    'moderate': 'moderate',
    'low': 'light',
}


# ------------------------------
# Utility: Haversine distance NM
# ------------------------------
def haversine_nm(lat1, lon1, lat2, lon2):
    R_km = 6371.0
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)
    a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
    d = 2 * R_km * atan2(sqrt(a), sqrt(1 - a))
    return d * 0.539957  # km -> NM


def is_hazard_active(hazard: HazardFeature, now: datetime) -> bool:
    now = parse_timestamp(now)
    valid_from, valid_to = parse_timestamp(hazard.valid_from), parse_timestamp(hazard.valid_to)
    if valid_from is not None and now < valid_from:
        return False
    if valid_to is not None and now > valid_to:
        return False
    return True


def _distance_nm(hazard: HazardFeature, airport_coords: Optional[Tuple[float, float]]) -> Optional[float]:
    if airport_coords is None or hazard.centroid is None:
        return None
    airport_lon, airport_lat = airport_coords
    hazard_lon, hazard_lat = hazard.centroid
    return haversine_nm(airport_lat, airport_lon, hazard_lat, hazard_lon)


def _hazard_key(hazard: HazardFeature) -> str:
    return (hazard.name or hazard.kind or 'unknown').lower()


def _format_thousands(feet: int) -> str:
    return f"{int(feet / 1000 + 0.5)},000"


def format_altitude(lower_ft: Optional[int], upper_ft: Optional[int]) -> str:
    if lower_ft and upper_ft:
        return f" between {_format_thousands(lower_ft)}-{_format_thousands(upper_ft)} feet"
    if lower_ft:
        return f" above {_format_thousands(lower_ft)} feet"
    if upper_ft:
        return f" below {_format_thousands(upper_ft)} feet"
    return ""


def format_hazard_sentence(hazard: HazardFeature,
                           airport_coords: Optional[Tuple[float, float]] = None,
                           area_count: int = 1) -> str:
    """e.g. "Moderate turbulence between 18,000-25,000 feet, 42 NM away." """
    key = _hazard_key(hazard)
    hazard_type = HAZARD_TYPE_NAMES.get(key, key)
    adjective = SEVERITY_ADJECTIVES.get(hazard.severity, '')

    sentence = f"{adjective} {hazard_type}" if adjective else hazard_type
    sentence = sentence[:1].upper() + sentence[1:]
    sentence += format_altitude(hazard.altitude_lower_ft, hazard.altitude_upper_ft)

    distance = _distance_nm(hazard, airport_coords)
    if distance is not None:
        sentence += ", nearby" if distance < NEARBY_NM else f", {int(distance + 0.5)} NM away"

    if area_count > 1:
        sentence += f" ({area_count} areas)"
    return sentence + "."


def _pirep_rank(severity: Optional[str]) -> int:
    return PIREP_SEVERITY_RANK.get(severity or 'unknown', UNRANKED)


def format_pirep_sentence(pirep: PilotReport) -> Optional[str]:
    conditions = []
    if _pirep_rank(pirep.turbulence) != UNRANKED:
        conditions.append(f"{pirep.turbulence} turbulence")
    if _pirep_rank(pirep.icing) != UNRANKED:
        conditions.append(f"{pirep.icing} icing")
    if not conditions:
        return None

    sentence = " and ".join(conditions)
    if pirep.altitude_ft_msl:
        sentence += f" reported at {_format_thousands(pirep.altitude_ft_msl)} feet"
    else:
        sentence += " reported by pilot"
    return sentence[:1].upper() + sentence[1:] + "."


def determine_severity(hazards: Sequence[HazardFeature], pireps: Sequence[PilotReport]) -> BriefingSeverity:
    if not hazards and not pireps:
        return BriefingSeverity.NONE
    if any(h.severity == 'extreme' for h in hazards):
        return BriefingSeverity.EXTREME
    if any(_pirep_rank(p.turbulence) <= 1 or _pirep_rank(p.icing) <= 1 for p in pireps):
        return BriefingSeverity.HIGH
    if any(h.severity == 'high' for h in hazards):
        return BriefingSeverity.HIGH
    if any(h.severity == 'moderate' for h in hazards) or \
            any(p.turbulence == 'moderate' or p.icing == 'moderate' for p in pireps):
        return BriefingSeverity.MODERATE
    return BriefingSeverity.LOW


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def generate_summary(severity: BriefingSeverity, item_count: int) -> Optional[str]:
    if severity is BriefingSeverity.EXTREME:
        return (f"SEVERE WEATHER: {item_count} active {_plural(item_count, 'advisory', 'advisories')} "
                f"in effect. Exercise extreme caution.")
    if severity is BriefingSeverity.HIGH:
        return (f"Significant weather advisories: {item_count} active "
                f"{_plural(item_count, 'condition', 'conditions')} reported. Review carefully before departure.")
    if severity is BriefingSeverity.MODERATE:
        return f"{item_count} weather {_plural(item_count, 'advisory', 'advisories')} in vicinity. Monitor conditions."
    if severity is BriefingSeverity.LOW:
        return f"{item_count} minor weather {_plural(item_count, 'advisory', 'advisories')} nearby."
    return None


def format_hazard_briefing(hazards: Sequence[HazardFeature], pireps: Sequence[PilotReport],
                           airport_coords: Optional[Tuple[float, float]] = None,
                           now: Optional[datetime] = None) -> HazardBriefing:
    """Build the hazard briefing for an airport.

    ``airport_coords`` is (lon, lat). Active hazards are ordered by distance when
    coordinates are known, by severity otherwise, then collapsed per hazard type.
    Only the three most severe PIREPs are rendered.
    """
    now = parse_timestamp(now) or datetime.now(timezone.utc)
    active = [h for h in hazards if is_hazard_active(h, now)]

    def severity_rank(h: HazardFeature) -> int:
        return HAZARD_SEVERITY_RANK.get(h.severity, UNRANKED)

    if airport_coords is not None:
        def sort_key(h):
            distance = _distance_nm(h, airport_coords)
            return (distance if distance is not None else float('inf'), severity_rank(h))
        active.sort(key=sort_key)
    else:
        active.sort(key=severity_rank)

    groups: Dict[str, List[HazardFeature]] = {}
    for hazard in active:
        groups.setdefault(_hazard_key(hazard), []).append(hazard)

    items = [format_hazard_sentence(group[0], airport_coords, len(group)) for group in groups.values()]

    ranked_pireps = sorted(pireps, key=lambda p: min(_pirep_rank(p.turbulence), _pirep_rank(p.icing)))
    pirep_items = [text for text in (format_pirep_sentence(p) for p in ranked_pireps[:MAX_PIREPS]) if text]
    items.extend(pirep_items)

    severity = determine_severity(active, ranked_pireps)
    return HazardBriefing(
        summary=generate_summary(severity, len(active) + len(pirep_items)),
        items=items,
        severity=severity,
    )
