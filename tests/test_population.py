# -*- coding: utf-8 -*-
"""Population risk analysis along the corridor"""
import asyncio
from datetime import date

import pytest

from corridor.collaborators import DEFAULT_CORRIDOR_MUNICIPALITIES
from corridor.models import Municipality
from corridor.population import PopulationRiskAnalyzer

DAY = date(2026, 10, 19)
BERLIN, SPANDAU, WITTENBERGE = 8011160, 8010404, 8010382


@pytest.fixture
def analyzer(station_registry, repository):
    return PopulationRiskAnalyzer(station_registry, repository)


@pytest.fixture
def municipalities():
    return {m.name: m for m in DEFAULT_CORRIDOR_MUNICIPALITIES}


@pytest.fixture
def analysed(analyzer):
    asyncio.run(analyzer.analyze_corridor(DAY))
    return analyzer


class TestComponents:
    @pytest.mark.parametrize("density,population,expected", [
        (4115, 3669491, 100),      # bonus capped, score capped
        (373.5, 16882, 80),
        (150, 1000, 55),           # 40 + 5·log10(1000)
        (50, 0, 20),               # no bonus without inhabitants
    ])
    def test_population_score(self, analyzer, density, population, expected):
        assert analyzer.population_score(density, population) == pytest.approx(expected)

    @pytest.mark.parametrize("volume,expected", [
        (65000, 100), (50000, 100), (15000, 80), (5000, 60), (1500, 40), (0, 20),
    ])
    def test_traffic_steps(self, analyzer, volume, expected):
        assert analyzer.traffic_score(volume) == expected

    def test_strategic_score(self, analyzer, station_registry):
        berlin = [station_registry.get_station(BERLIN), station_registry.get_station(SPANDAU)]
        # hub 40 + category 70, then category 60; averaged
        assert analyzer.strategic_score(berlin) == 85
        assert analyzer.strategic_score([station_registry.get_station(WITTENBERGE)]) == 100
        assert analyzer.strategic_score([]) == 0

    @pytest.mark.parametrize("name,expected", [
        ("Berlin", 20), ("Freie und Hansestadt Hamburg", 20), ("Neustadt", 40), ("Ludwigslust", 70),
    ])
    def test_alternative_access(self, analyzer, name, expected):
        assert analyzer.alternative_access_score(name) == expected

    def test_traffic_volume_estimate(self, analyzer, station_registry, make_station):
        berlin = [station_registry.get_station(BERLIN), station_registry.get_station(SPANDAU)]
        assert analyzer.estimate_traffic_volume(berlin) == 65000
        assert analyzer.estimate_traffic_volume([make_station(category=6)]) == 1500
        assert analyzer.estimate_traffic_volume([]) == 0

    def test_risk_levels(self, analyzer):
        assert analyzer.risk_level(70) == "high"
        assert analyzer.risk_level(69) == "medium"
        assert analyzer.risk_level(40) == "medium"
        assert analyzer.risk_level(39) == "low"

    def test_corridor_segment(self, analyzer, make_station):
        stations = [make_station(distance_from_origin=100.4), make_station(distance_from_origin=120.2)]
        assert analyzer.corridor_segment(stations) == "km_100-121"
        assert analyzer.corridor_segment([]) == "unknown"

    @pytest.mark.parametrize("score,expected", [
        (100, ("critical", 1)), (80, ("critical", 1)), (79, ("high", 2)),
        (45, ("elevated", 3)), (20, ("moderate", 4)), (0, ("low", 5)),
    ])
    def test_zone_levels(self, analyzer, score, expected):
        assert analyzer.zone_level(score) == expected


class TestMunicipalityAnalysis:
    @pytest.mark.parametrize("name,score,level", [
        ("Berlin", 89, "high"),
        ("Wittenberge", 89, "high"),
        ("Ludwigslust", 61, "medium"),
        ("Hagenow", 59, "medium"),
        ("Büchen", 67, "medium"),
        ("Hamburg", 92, "high"),
    ])
    def test_impact_scores(self, analyzer, municipalities, name, score, level):
        record = analyzer.analyze_municipality(municipalities[name])
        assert record.disruption_impact_score == score
        assert record.risk_level == level

    def test_berlin_record(self, analyzer, municipalities):
        record = analyzer.analyze_municipality(municipalities["Berlin"])

        assert record.municipality_id == "11000000"
        assert record.corridor_segment == "km_0-15"
        assert record.daily_traffic_volume == 65000
        assert len(record.recommendations) == 7
        assert record.recommendations[0] == "Priority area for service reliability improvements"
        assert analyzer.key_risk_factors(record) == [
            "Very high population density",
            "Major transportation hub",
            "Limited alternative transportation options",
            "Critical corridor position",
        ]

    def test_small_town_has_no_recommendations(self, analyzer, municipalities):
        record = analyzer.analyze_municipality(municipalities["Büchen"])
        assert record.recommendations == ()
        assert analyzer.key_risk_factors(record) == []

    def test_stations_off_the_corridor(self, analyzer):
        record = analyzer.analyze_municipality(Municipality("99", "Nirgendwo", 500, 10.0, (1,)))

        assert record.corridor_segment == "unknown"
        assert record.daily_traffic_volume == 0
        # (20 + 5·log10(500))·0.4 + 20·0.3 + 0 + 70·0.1
        assert record.disruption_impact_score == 26
        assert record.risk_level == "low"

    def test_unknown_area_counts_as_sparse(self):
        assert Municipality("99", "Nirgendwo", 500, 0.0).density == 0.0


class TestCorridorAnalysis:
    def test_records_are_persisted_highest_first(self, analyzer):
        records = asyncio.run(analyzer.analyze_corridor(DAY))

        assert len(records) == 6
        stored = analyzer.risk_history(DAY)
        assert [r.municipality_name for r in stored] == [
            "Hamburg", "Berlin", "Wittenberge", "Büchen", "Ludwigslust", "Hagenow",
        ]

    def test_rerun_overwrites_same_day(self, analyzer):
        asyncio.run(analyzer.analyze_corridor(DAY))
        asyncio.run(analyzer.analyze_corridor(DAY))
        assert len(analyzer.risk_history(DAY)) == 6
        assert len(analyzer.risk_history(date(2026, 10, 1), DAY)) == 6

    def test_failing_municipality_is_skipped(self, station_registry, repository, municipalities):
        broken = Municipality("00", "Broken", "many", 1.0)
        analyzer = PopulationRiskAnalyzer(
            station_registry, repository, [municipalities["Berlin"], broken]
        )

        records = asyncio.run(analyzer.analyze_corridor(DAY))

        assert [r.municipality_name for r in records] == ["Berlin"]
        assert len(analyzer.risk_history(DAY)) == 1


class TestZones:
    def test_highest_risk_zones(self, analysed):
        zones = analysed.highest_risk_zones(limit=2, analysis_date=DAY)

        assert [z["record"].municipality_name for z in zones] == ["Hamburg", "Berlin"]
        assert zones[0]["mitigation_actions"] == list(zones[0]["record"].recommendations)
        assert "High passenger traffic volume" in zones[0]["key_risk_factors"]

    def test_risk_zones_filters(self, analysed):
        zones = analysed.risk_zones(DAY)
        assert zones[0]["zone_name"] == "Hamburg (km_289-289)"
        assert zones[0]["zone_level"] == "critical"
        assert zones[0]["priority"] == 1
        assert zones[0]["mitigation_strategies"][0] == "Immediate deployment of emergency response teams"

        high = analysed.risk_zones(DAY, zone_level="high")
        assert [z["record"].municipality_name for z in high] == ["Büchen", "Ludwigslust"]
        assert len(analysed.risk_zones(DAY, min_score=80)) == 3

    def test_high_impact_zones(self, analysed):
        result = analysed.high_impact_zones(DAY)

        # Hagenow (59) stays below the critical line
        assert len(result["critical_zones"]) == 5
        assert result["critical_zones"][0]["zone"] == "Hamburg (km_289-289)"
        assert result["corridor_health_metrics"] == {
            "total_population_at_risk": 5615733,
            "average_risk_score": 76.17,
            "high_risk_zone_count": 3,
            "corridor_vulnerability_index": 100.0,
        }
        actions = {a["urgency"]: a for a in result["priority_actions"]}
        assert list(actions) == ["immediate", "short_term", "long_term"]
        assert actions["immediate"]["target_zones"] == [
            "Hamburg (km_289-289)", "Berlin (km_0-15)", "Wittenberge (km_126-126)",
        ]
        assert actions["long_term"]["target_zones"] == ["Hamburg (km_289-289)", "Berlin (km_0-15)"]

    def test_high_impact_without_analysis(self, analyzer):
        result = analyzer.high_impact_zones(DAY)
        assert result["critical_zones"] == []
        assert result["priority_actions"] == []
        assert result["corridor_health_metrics"]["corridor_vulnerability_index"] == 0.0

    def test_corridor_risk_profile(self, analysed):
        profile = analysed.corridor_risk_profile(DAY)

        assert profile["total_zones"] == 6
        assert profile["critical_zones"] == 3
        assert profile["high_risk_zones"] == 2
        assert profile["total_population_at_risk"] == 5615733
        assert profile["risk_distribution"] == {
            "critical": 3, "high": 2, "elevated": 1, "moderate": 0, "low": 0,
        }
        # mean 76.17 + 3/6·30 + 2/6·20
        assert profile["corridor_vulnerability_index"] == 97.83

    def test_empty_corridor_risk_profile(self, analyzer):
        profile = analyzer.corridor_risk_profile(DAY)
        assert profile["total_zones"] == 0
        assert profile["corridor_vulnerability_index"] == 0.0
