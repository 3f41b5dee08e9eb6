"""
Tests for the plain-English hazard briefing
"""

from datetime import datetime, timedelta, timezone

from hazard_briefing import (
    format_altitude,
    format_hazard_briefing,
    format_hazard_sentence,
    format_pirep_sentence,
    haversine_nm,
)
from models import BriefingSeverity, HazardFeature, PilotReport

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
AIRPORT = (0.0, 0.0)  # lon, lat


def turbulence(severity='moderate', centroid=None, **kwargs):
    return HazardFeature(kind='turb', severity=severity, centroid=centroid, **kwargs)


def test_haversine_one_degree_latitude():
    assert round(haversine_nm(0, 0, 1, 0)) == 60


def test_hazard_sentence_with_altitude_and_distance():
    hazard = turbulence(altitude_lower_ft=18000, altitude_upper_ft=25000, centroid=(0.0, 0.7))
    assert format_hazard_sentence(hazard, AIRPORT) == \
        "Moderate turbulence between 18,000-25,000 feet, 42 NM away."


def test_hazard_sentence_nearby():
    hazard = HazardFeature(kind='ice', severity='low', centroid=(0.0, 0.1), altitude_lower_ft=4000)
    assert format_hazard_sentence(hazard, AIRPORT) == "Light icing above 4,000 feet, nearby."


def test_hazard_sentence_without_coordinates():
    hazard = HazardFeature(kind='convective', severity='extreme', altitude_upper_ft=45000)
    assert format_hazard_sentence(hazard) == "Severe thunderstorm activity below 45,000 feet."


def test_hazard_sentence_unknown_severity():
    assert format_hazard_sentence(HazardFeature(kind='IFR')) == "IFR conditions."


def test_format_altitude():
    assert format_altitude(None, None) == ""
    assert format_altitude(12500, None) == " above 13,000 feet"


def test_pirep_sentences():
    assert format_pirep_sentence(PilotReport(turbulence='severe', altitude_ft_msl=8000)) == \
        "Severe turbulence reported at 8,000 feet."
    assert format_pirep_sentence(PilotReport(turbulence='light', icing='moderate', altitude_ft_msl=12000)) == \
        "Light turbulence and moderate icing reported at 12,000 feet."
    assert format_pirep_sentence(PilotReport(icing='moderate')) == "Moderate icing reported by pilot."
    assert format_pirep_sentence(PilotReport(raw_text='UA /OV JFK')) is None


def test_empty_briefing():
    briefing = format_hazard_briefing([], [], AIRPORT, NOW)
    assert briefing.severity is BriefingSeverity.NONE
    assert briefing.summary is None
    assert briefing.items == []


def test_expired_and_future_hazards_are_filtered():
    hazards = [
        turbulence(valid_from=NOW - timedelta(hours=4), valid_to=NOW - timedelta(hours=1)),
        turbulence(valid_from=NOW + timedelta(hours=1), valid_to=NOW + timedelta(hours=4)),
    ]
    briefing = format_hazard_briefing(hazards, [], AIRPORT, NOW)
    assert briefing.items == []
    assert briefing.severity is BriefingSeverity.NONE
    assert briefing.summary is None


def test_same_type_hazards_are_grouped():
    hazards = [
        turbulence(centroid=(0.0, 2.0), valid_from=NOW - timedelta(hours=1), valid_to=NOW + timedelta(hours=1)),
        turbulence(centroid=(0.0, 0.7)),
    ]
    briefing = format_hazard_briefing(hazards, [], AIRPORT, NOW)

    assert briefing.items == ["Moderate turbulence, 42 NM away (2 areas)."]
    assert briefing.severity is BriefingSeverity.MODERATE
    assert briefing.summary == "2 weather advisories in vicinity. Monitor conditions."


def test_hazards_sorted_by_severity_without_coordinates():
    hazards = [
        HazardFeature(kind='ifr', severity='low'),
        HazardFeature(kind='ice', severity='high'),
    ]
    briefing = format_hazard_briefing(hazards, [], None, NOW)
    assert briefing.items == ["Moderate to severe icing.", "Light IFR conditions."]
    assert briefing.severity is BriefingSeverity.HIGH


def test_extreme_hazard_summary():
    briefing = format_hazard_briefing([HazardFeature(kind='convective', severity='extreme')], [], None, NOW)
    assert briefing.severity is BriefingSeverity.EXTREME
    assert briefing.summary == "SEVERE WEATHER: 1 active advisory in effect. Exercise extreme caution."


def test_only_three_worst_pireps_are_shown():
    pireps = [
        PilotReport(turbulence='light', altitude_ft_msl=5000),
        PilotReport(icing='light', altitude_ft_msl=6000),
        PilotReport(turbulence='severe', altitude_ft_msl=30000),
        PilotReport(turbulence='moderate', altitude_ft_msl=22000),
        PilotReport(icing='moderate', altitude_ft_msl=9000),
    ]
    briefing = format_hazard_briefing([], pireps, AIRPORT, NOW)

    assert len(briefing.items) == 3
    assert briefing.items[0] == "Severe turbulence reported at 30,000 feet."
    assert briefing.severity is BriefingSeverity.HIGH
    assert briefing.summary.startswith("Significant weather advisories: 3 active conditions")


def test_unrated_pirep_counts_as_low():
    briefing = format_hazard_briefing([], [PilotReport(raw_text='UA /OV JFK /TP B738')], None, NOW)
    assert briefing.severity is BriefingSeverity.LOW
    assert briefing.items == []
    assert briefing.summary == "0 minor weather advisories nearby."


def test_summary_counts_only_rendered_pireps():
    pireps = [
        PilotReport(turbulence='moderate', altitude_ft_msl=9000),
        PilotReport(raw_text='UA /OV JFK /TP B738'),
    ]
    briefing = format_hazard_briefing([], pireps, None, NOW)
    assert briefing.items == ["Moderate turbulence reported at 9,000 feet."]
    assert briefing.summary == "1 weather advisory in vicinity. Monitor conditions."


def test_naive_now_is_treated_as_utc():
    hazard = turbulence(valid_from=NOW - timedelta(hours=1), valid_to=NOW + timedelta(hours=1))
    briefing = format_hazard_briefing([hazard], [], None, NOW.replace(tzinfo=None))
    assert briefing.items == ["Moderate turbulence."]

    later = (NOW + timedelta(hours=2)).replace(tzinfo=None)
    assert format_hazard_briefing([hazard], [], None, later).severity is BriefingSeverity.NONE


def test_summary_is_none_only_without_severity():
    cases = [
        ([], []),
        ([HazardFeature(kind='turb', severity='low')], []),
        ([], [PilotReport(icing='moderate')]),
    ]
    for hazards, pireps in cases:
        briefing = format_hazard_briefing(hazards, pireps, None, NOW)
        assert (briefing.summary is None) == (briefing.severity is BriefingSeverity.NONE)
