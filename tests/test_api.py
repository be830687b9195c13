"""
FastAPI endpoint tests
"""
from datetime import date

from api.cache import ranking_cache

BALANCED_BODY = {
    "infrastructure_weight": 0.33,
    "timetable_weight": 0.33,
    "population_risk_weight": 0.34,
    "focus_area": "balanced",
}


class TestHealth:
    def test_health(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["stations"] == 7
        assert data["subscribers"] == ["station_priorities", "ranking_cache"]

    def test_reload(self, test_client):
        response = test_client.post("/api/reload")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "stations": 7}


class TestProfileEndpoints:
    """Weight profile CRUD"""

    def test_presets(self, test_client):
        response = test_client.get("/api/profiles/presets")
        assert response.status_code == 200
        names = [p["profile_name"] for p in response.json()]
        assert names == ["balanced", "infrastructure_focus", "timetable_focus", "population_focus"]

    def test_save_reports_recalculation(self, test_client):
        response = test_client.put("/api/profiles/mine", json=BALANCED_BODY)
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["recalculated_stations"] == 7
        assert data["failed_subscribers"] == []
        assert data["significant_changes"]
        assert all(abs(c["change"]) >= 5 for c in data["significant_changes"])

    def test_save_preset_conflict(self, test_client):
        response = test_client.put("/api/profiles/balanced", json=BALANCED_BODY)
        assert response.status_code == 409

    def test_save_invalid_lists_errors(self, test_client):
        body = dict(BALANCED_BODY, infrastructure_weight=0.5, timetable_weight=0.5, population_risk_weight=0.5)
        response = test_client.put("/api/profiles/bad", json=body)
        assert response.status_code == 422
        assert response.json()["errors"] == ["Weights must sum to 1.0 (got 1.500)"]

        assert test_client.get("/api/profiles/bad").status_code == 404

    def test_get_list_delete(self, test_client):
        test_client.put("/api/profiles/mine", json=BALANCED_BODY)

        response = test_client.get("/api/profiles/mine")
        assert response.status_code == 200
        assert response.json()["is_preset"] is False

        names = [p["profile_name"] for p in test_client.get("/api/profiles").json()]
        assert names[-1] == "mine"

        response = test_client.delete("/api/profiles/mine")
        assert response.status_code == 200
        assert test_client.delete("/api/profiles/mine").status_code == 404
        assert test_client.delete("/api/profiles/balanced").status_code == 409

    def test_active_profile(self, test_client):
        assert test_client.get("/api/profiles/active").json()["profile_name"] == "balanced"

        response = test_client.put(
            "/api/profiles/active", json={"profile_name": "timetable_focus"}
        )
        assert response.status_code == 200
        assert response.json()["profile_name"] == "timetable_focus"
        assert response.json()["is_preset"] is True

        response = test_client.put("/api/profiles/active", json={"profile_name": "ghost"})
        assert response.status_code == 404

    def test_validate_preview(self, test_client):
        response = test_client.post("/api/profiles/validate", json={
            "profile_name": "tt",
            "profile": {
                "infrastructure_weight": 0.2,
                "timetable_weight": 0.6,
                "population_risk_weight": 0.2,
                "focus_area": "timetable",
            },
            "preview": True,
        })
        assert response.status_code == 200
        assert response.json() == {
            "is_valid": True,
            "errors": [],
            "focus_area_impact": {"infrastructure": 20, "timetable": 60, "population_risk": 20},
        }
        assert test_client.get("/api/profiles/tt").status_code == 404

    def test_focus_profile(self, test_client):
        response = test_client.post("/api/profiles/focus", json={
            "profile_name": "infra",
            "focus_area": "infrastructure",
        })
        assert response.status_code == 200
        assert response.json()["profile"]["infrastructure_weight"] == 0.6

    def test_focus_preview(self, test_client):
        response = test_client.get("/api/profiles/preview/population")
        assert response.status_code == 200
        data = response.json()
        assert data["new_profile"]["population_risk_weight"] == 0.6
        assert len(data["impact_preview"]) == 7

        assert test_client.get("/api/profiles/preview/freight").status_code == 422

    def test_stats_and_summary(self, test_client):
        test_client.put("/api/profiles/mine", json=BALANCED_BODY)

        stats = test_client.get("/api/profiles/stats").json()
        assert stats["total_profiles"] == 1

        summary = test_client.get("/api/profiles/summary").json()
        assert summary["total_profiles"] == 1
        assert summary["recent_profiles"][0]["profile_name"] == "mine"
        assert len(summary["presets"]) == 4


class TestStationEndpoints:
    def test_stations(self, test_client):
        response = test_client.get("/api/stations")
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 7
        assert data[0]["name"] == "Berlin Hbf"

    def test_priorities_after_save(self, test_client):
        assert test_client.get("/api/stations/priorities").json() == []
        test_client.put("/api/profiles/mine", json=BALANCED_BODY)

        response = test_client.get("/api/stations/priorities?limit=3")
        assert response.status_code == 200
        data = response.json()
        assert [row["rank"] for row in data] == [1, 2, 3]
        assert data[0]["composite_score"] >= data[-1]["composite_score"]

    def test_profile_save_clears_ranking_cache(self, test_client):
        test_client.put("/api/profiles/mine", json=BALANCED_BODY)
        test_client.get("/api/stations/priorities")
        assert len(ranking_cache) == 1

        test_client.put("/api/profiles/other", json=BALANCED_BODY)
        assert len(ranking_cache) == 0

    def test_invalid_date(self, test_client):
        response = test_client.get("/api/stations/priorities?analysis_date=19.10.2026")
        assert response.status_code == 400

    def test_recalculate_and_detail(self, test_client):
        response = test_client.post("/api/stations/recalculate", json={})
        assert response.status_code == 200
        assert response.json()["profile_name"] == "balanced"
        assert response.json()["stations_scored"] == 7

        response = test_client.get("/api/stations/8011160")
        assert response.status_code == 200
        data = response.json()
        assert data["analysis_date"] == date.today().isoformat()
        assert data["metrics"]["strategic_importance"] == 100
        assert data["recommendations"]

    def test_recalculate_clears_ranking_cache(self, test_client):
        test_client.put("/api/profiles/mine", json=BALANCED_BODY)
        test_client.get("/api/stations/priorities")
        assert len(ranking_cache) == 1

        response = test_client.post("/api/stations/recalculate", json={"profile_name": "mine"})
        assert response.status_code == 200
        assert response.json()["updated_priorities"] == []
        assert response.json()["failed_subscribers"] == []
        assert len(ranking_cache) == 0

    def test_recalculate_station_subset(self, test_client):
        response = test_client.post("/api/stations/recalculate", json={"station_ids": [8011160]})
        assert response.status_code == 200
        data = response.json()
        assert data["stations_scored"] == 1
        assert [c["station_id"] for c in data["updated_priorities"]] == [8011160]

        assert test_client.get("/api/stations/8002548").json()["metrics"] is None

    def test_recalculate_unknown_profile(self, test_client):
        response = test_client.post("/api/stations/recalculate", json={"profile_name": "ghost"})
        assert response.status_code == 404

    def test_critical(self, test_client):
        test_client.post("/api/stations/recalculate", json={})
        response = test_client.get("/api/stations/critical?threshold=0")
        assert response.status_code == 200
        assert len(response.json()) == 7

    def test_unknown_station(self, test_client):
        assert test_client.get("/api/stations/1").status_code == 404


class TestConnectionEndpoints:
    def test_analyze_default_corridor(self, test_client):
        response = test_client.post("/api/connections/analyze")
        assert response.status_code == 200
        assert len(response.json()) == 12

        most = test_client.get("/api/connections/most-fragile?limit=2").json()
        assert len(most) == 2

        ranked = test_client.get("/api/connections/vulnerability").json()
        assert ranked[0]["vulnerability_rank"] == 1
        assert ranked[0]["from_name"]

    def test_analyze_given_connections(self, test_client):
        response = test_client.post("/api/connections/analyze", json={"connections": [{
            "from_station_id": 8011160,
            "to_station_id": 8010404,
            "arrival_time": "10:30",
            "departure_time": "10:35",
            "train_class": "ICE",
            "buffer_minutes": 3,
        }]})
        assert response.status_code == 200
        assert response.json()[0]["fragility_score"] == 70

        history = test_client.get("/api/connections/fragility").json()
        assert len(history) == 1

    def test_bad_time_format(self, test_client):
        response = test_client.post("/api/connections/analyze", json={"connections": [{
            "from_station_id": 1,
            "to_station_id": 2,
            "arrival_time": "half past ten",
            "departure_time": "10:35",
            "train_class": "ICE",
            "buffer_minutes": 3,
        }]})
        assert response.status_code == 422

    def test_history_range_order(self, test_client):
        response = test_client.get("/api/connections/fragility?start=2026-10-19&end=2026-10-01")
        assert response.status_code == 400


class TestRiskZoneEndpoints:
    def test_analyze_and_list(self, test_client):
        response = test_client.post("/api/risk-zones/analyze")
        assert response.status_code == 200
        assert len(response.json()) == 6

        zones = test_client.get("/api/risk-zones").json()
        assert [z["zone_id"] for z in zones][:2] == ["02000000", "11000000"]
        assert zones[0]["zone_level"] == "critical"

        elevated = test_client.get("/api/risk-zones?zone_level=elevated").json()
        assert [z["zone_name"] for z in elevated] == ["Hagenow (km_180-180)"]

        assert test_client.get("/api/risk-zones?zone_level=severe").status_code == 422

    def test_zone_detail(self, test_client):
        test_client.post("/api/risk-zones/analyze")

        response = test_client.get("/api/risk-zones/11000000")
        assert response.status_code == 200
        assert response.json()["affected_population"] == 3669491

        assert test_client.get("/api/risk-zones/nowhere").status_code == 404

    def test_highest_and_high_impact(self, test_client):
        test_client.post("/api/risk-zones/analyze")

        highest = test_client.get("/api/risk-zones/highest?limit=1").json()
        assert highest[0]["zone"]["municipality_name"] == "Hamburg"
        assert highest[0]["key_risk_factors"]

        impact = test_client.get("/api/risk-zones/high-impact").json()
        assert len(impact["critical_zones"]) == 5
        assert [a["urgency"] for a in impact["priority_actions"]] == [
            "immediate", "short_term", "long_term",
        ]

    def test_corridor_profile(self, test_client):
        assert test_client.get("/api/risk-zones/corridor/profile").json()["total_zones"] == 0

        test_client.post("/api/risk-zones/analyze")
        profile = test_client.get("/api/risk-zones/corridor/profile").json()
        assert profile["total_zones"] == 6
        assert profile["risk_distribution"]["critical"] == 3

    def test_history_range_order(self, test_client):
        response = test_client.get("/api/risk-zones/history?start=2026-10-19&end=2026-10-01")
        assert response.status_code == 400


class TestApiKey:
    def test_writes_require_key_when_configured(self, test_client, monkeypatch):
        monkeypatch.setenv("CORRIDOR_API_KEY", "secret")

        assert test_client.put("/api/profiles/mine", json=BALANCED_BODY).status_code == 403
        response = test_client.put(
            "/api/profiles/mine", json=BALANCED_BODY, headers={"X-API-Key": "secret"}
        )
        assert response.status_code == 200
        # reads stay open
        assert test_client.get("/api/profiles").status_code == 200
