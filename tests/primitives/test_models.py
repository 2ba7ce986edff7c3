# tests/primitives/test_models.py
# 原语模型测试 / Primitive model tests

"""原语模型测试。 / Primitive model tests."""
import pytest
from magi.primitives.models import (
    COLOR_BANDS,
    FALLBACK_VERDICT,
    AnalysisResult,
    CoreResult,
    EnvironmentalContext,
    Perspective,
    Scenario,
    SynthesizedVerdict,
    ValidationVerdict,
    clamp_percent,
    color_band_for,
)


class TestPerspective:
    """视角注册表测试。 / Perspective registry tests."""

    def test_declaration_order(self):
        assert [p.name for p in Perspective] == ["CASPER", "BALTHASAR", "MELCHIOR"]

    def test_roles_and_lenses(self):
        assert Perspective.CASPER.role == "casper"
        assert Perspective.BALTHASAR.lens == "Empathy"
        assert Perspective.MELCHIOR.lens == "Intuition"

    def test_each_carries_prompt_and_rubric(self):
        for p in Perspective:
            assert p.system_prompt
            assert p.rubric

    def test_offline_text_starts_with_marker(self):
        text = Perspective.CASPER.offline_text("boom")
        assert text.startswith("[CASPER OFFLINE]")
        assert "boom" in text


class TestColorBand:
    """色带阈值测试。 / Colour band threshold tests."""

    @pytest.mark.parametrize("c", range(0, 101))
    def test_band_matches_threshold_for_every_coefficient(self, c):
        band = color_band_for(c)
        if c >= 75:
            assert band == "green"
        elif c >= 50:
            assert band == "yellow"
        elif c >= 25:
            assert band == "orange"
        else:
            assert band == "red"
        assert band in COLOR_BANDS

    @pytest.mark.parametrize("c,band", [(74, "yellow"), (75, "green"), (49, "orange"), (24, "red")])
    def test_boundaries(self, c, band):
        assert color_band_for(c) == band


class TestClampPercent:
    def test_rounds_and_clamps(self):
        assert clamp_percent(62.4, default=0) == 62
        assert clamp_percent(140, default=0) == 100
        assert clamp_percent(-3, default=0) == 0

    def test_accepts_percent_string(self):
        assert clamp_percent("35%", default=0) == 35

    def test_falls_back_on_garbage(self):
        assert clamp_percent("high", default=50) == 50
        assert clamp_percent(None, default=50) == 50
        assert clamp_percent(True, default=50) == 50
        assert clamp_percent(float("nan"), default=50) == 50


class TestValidationVerdict:
    def test_accept_has_no_feedback(self):
        verdict = ValidationVerdict.accept()
        assert verdict.passed
        assert verdict.issues == []
        assert verdict.feedback == ""

    def test_accept_records_judge_error(self):
        verdict = ValidationVerdict.accept(judge_error="[JUDGE] down")
        assert verdict.passed
        assert verdict.judge_error == "[JUDGE] down"


class TestSynthesizedVerdict:
    def test_fallback_is_consistent(self):
        assert FALLBACK_VERDICT.safety_coefficient == 50
        assert FALLBACK_VERDICT.escalation_risk_24h == 50
        assert FALLBACK_VERDICT.color_band == "yellow"
        assert FALLBACK_VERDICT.scenarios == ()
        assert FALLBACK_VERDICT.is_color_consistent

    def test_fallback_scenarios_immutable(self):
        with pytest.raises(AttributeError):
            FALLBACK_VERDICT.scenarios.append("x")

    def test_to_dict_uses_wire_names(self):
        verdict = SynthesizedVerdict(
            safety_coefficient=80,
            escalation_risk_24h=10,
            dominant_threat="None",
            color_band="green",
            executive_summary="Calm.",
            scenarios=(Scenario("24h", 70, "Quiet", "Monitor"),),
            final_verdict="Proceed.",
        )
        data = verdict.to_dict()
        assert data["psychoPassColor"] == "green"
        assert data["escalationRisk24h"] == 10
        assert data["scenarios"][0]["recommendedAction"] == "Monitor"

    def test_scenario_from_dict_coerces_probability(self):
        scenario = Scenario.from_dict(
            {"timeframe": "48h", "probability": "30%", "description": "d", "recommendedAction": "a"}
        )
        assert scenario.probability == 30
        assert scenario.recommended_action == "a"


class TestAnalysisResult:
    def _result(self):
        cores = tuple(
            CoreResult(perspective=p, text=f"{p.name} text", attempts=i + 1)
            for i, p in enumerate(Perspective)
        )
        return AnalysisResult(cores=cores, verdict=FALLBACK_VERDICT, errors=["[EXHAUSTED] x"])

    def test_text_lookup(self):
        result = self._result()
        assert result.text(Perspective.BALTHASAR) == "BALTHASAR text"
        assert result.core(Perspective.MELCHIOR).attempts == 3
        assert result.degraded

    def test_to_dict(self):
        data = self._result().to_dict()
        assert data["casper"] == "CASPER text"
        assert data["melchior"] == "MELCHIOR text"
        assert data["sybil"]["psychoPassColor"] == "yellow"
        assert data["errors"] == ["[EXHAUSTED] x"]
        assert data["attempts"] == {"casper": 1, "balthasar": 2, "melchior": 3}


class TestEnvironmentalContext:
    def test_empty_dict_is_none(self):
        assert EnvironmentalContext.from_dict({}) is None
        assert EnvironmentalContext.from_dict(None) is None

    def test_partial_context(self):
        ctx = EnvironmentalContext.from_dict({
            "fires": {"totalPoints": 12, "groups": 3, "highestFrp": None, "summary": "Minor."},
        })
        assert ctx.fires.total_points == 12
        assert ctx.fires.highest_frp is None
        assert ctx.air_quality is None
        assert not ctx.is_empty

    def test_unknown_or_malformed_sections_ignored(self):
        ctx = EnvironmentalContext.from_dict({"weather": {"x": 1}, "webcams": "nope"})
        assert ctx.is_empty

    def test_full_context(self):
        ctx = EnvironmentalContext.from_dict({
            "airQuality": {"stations": 4, "pm25Range": "12-40", "worstParameter": "pm25", "summary": "s"},
            "webcams": {"total": 9, "activeCount": 5, "categories": ["traffic"], "summary": "s"},
            "acled": {"totalEvents": 7, "fatalities": 2, "eventTypes": ["Protests"],
                      "timeRange": "last 30 days", "summary": "s"},
            "gdelt": {"totalEvents": 40, "geolocatedEvents": 18, "avgTone": -4.25,
                      "topSources": ["reuters.com"], "summary": "s"},
        })
        assert ctx.air_quality.worst_parameter == "pm25"
        assert ctx.webcams.categories == ("traffic",)
        assert ctx.acled.event_types == ("Protests",)
        assert ctx.gdelt.avg_tone == pytest.approx(-4.25)

    def test_bare_string_list_fields_stay_whole(self):
        ctx = EnvironmentalContext.from_dict({
            "webcams": {"total": 1, "activeCount": 1, "categories": "traffic", "summary": ""},
            "acled": {"totalEvents": 1, "fatalities": 0, "eventTypes": "Protests",
                      "timeRange": "", "summary": ""},
            "gdelt": {"totalEvents": 1, "geolocatedEvents": 0, "avgTone": 0,
                      "topSources": 42, "summary": ""},
        })
        assert ctx.webcams.categories == ("traffic",)
        assert ctx.acled.event_types == ("Protests",)
        assert ctx.gdelt.top_sources == ()
