"""
Tests for recommendations, bias analysis and learning metrics.
"""

import pytest

from vectorkb.models import PreferenceSnapshot


# =============================================================================
# Recommendations
# =============================================================================

class TestRecommendations:
    @pytest.mark.asyncio
    async def test_user_top_three_tags_descending(self, engine, store):
        store.save_user("alice", PreferenceSnapshot(tag_weights={"a": 0.2, "b": 1.1, "c": -0.4, "d": 0.7, "e": 0.5}))

        recommendations = await engine.get_recommendations("alice", "anything")

        assert len(recommendations) == 1
        assert recommendations[0].source == "user"
        assert recommendations[0].tags == ["b", "d", "e"]

    @pytest.mark.asyncio
    async def test_diversity_guarantee_with_concentrated_user(self, engine, store):
        engine.set_user_preference("alice", "blue", 1.4)
        store.save_global(PreferenceSnapshot(tag_weights={"green": 0.6, "geometric": 0.4, "blue": 0.1}))

        recommendations = await engine.get_recommendations(
            "alice", "colorful geometric shapes", ensure_diversity=True
        )

        assert [r.source for r in recommendations] == ["user", "global"]
        assert recommendations[1].tags == ["green", "geometric"]
        assert any("blue" not in r.tags for r in recommendations)

    @pytest.mark.asyncio
    async def test_global_entry_present_even_without_global_weights(self, engine, seeded_objects):
        engine.set_user_preference("alice", "blue", 1.4)

        recommendations = await engine.get_recommendations("alice", "shapes", ensure_diversity=True)

        global_recs = [r for r in recommendations if r.source == "global"]
        assert len(global_recs) == 1
        # falls back to knowledge-base tag popularity (all tags tie at 1, alphabetical)
        assert global_recs[0].tags == ["blue", "circle"]

    @pytest.mark.asyncio
    async def test_cold_start_user_gets_global_entries(self, engine, store):
        store.save_global(PreferenceSnapshot(tag_weights={"popular": 0.9}))

        recommendations = await engine.get_recommendations("new-user", "geometric shapes")

        assert len(recommendations) > 0
        assert any(r.source == "global" for r in recommendations)

    @pytest.mark.asyncio
    async def test_cold_start_never_empty_on_empty_system(self, engine):
        recommendations = await engine.get_recommendations("new-user", "geometric shapes")

        assert len(recommendations) == 1
        assert recommendations[0].source == "global"
        assert recommendations[0].tags == []


# =============================================================================
# Bias & Diversity
# =============================================================================

class TestBiasAnalysis:
    @pytest.mark.asyncio
    async def test_detects_extreme_bias(self, engine):
        engine.set_user_preference("alice", "extreme", 1.5)
        engine.set_user_preference("alice", "other", -1.0)

        report = await engine.analyze_bias("alice")

        assert report.has_extreme_bias is True
        assert "extreme" in report.biased_tags
        assert "other" not in report.biased_tags
        assert "diversify" in report.recommended_actions

    @pytest.mark.asyncio
    async def test_strong_negative_weight_counts_as_bias(self, engine):
        engine.set_user_preference("alice", "hated", -1.3)

        report = await engine.analyze_bias("alice")

        assert report.biased_tags == ["hated"]

    @pytest.mark.asyncio
    async def test_balanced_user_not_flagged(self, engine):
        engine.set_user_preference("alice", "blue", 0.8)

        report = await engine.analyze_bias("alice")

        assert report.has_extreme_bias is False
        assert report.biased_tags == []
        assert report.recommended_actions == []


class TestDiversityScore:
    def test_mixed_weights_in_unit_interval(self, engine):
        score = engine.calculate_diversity_score({"blue": 1.2, "red": 0.8, "green": 0.3, "yellow": -0.2})
        assert 0 < score <= 1

    def test_empty_is_maximally_diverse(self, engine):
        assert engine.calculate_diversity_score({}) == 1.0

    def test_uniform_weights_score_one(self, engine):
        assert engine.calculate_diversity_score({"a": 0.5, "b": 0.5}) == pytest.approx(1.0)

    def test_widely_spread_weights_floor_at_zero(self, engine):
        assert engine.calculate_diversity_score({"a": 1.5, "b": -3.0}) == 0.0


class TestBiasScore:
    def test_coefficient_of_variation(self, engine):
        snapshot = PreferenceSnapshot(tag_weights={"a": 1.0, "b": 0.5})
        # mean 0.75, population stddev 0.25
        assert engine.diagnostics.calculate_bias_score(snapshot) == pytest.approx(1 / 3)

    def test_non_positive_mean_scores_zero(self, engine):
        snapshot = PreferenceSnapshot(tag_weights={"a": 1.0, "b": -1.0})
        assert engine.diagnostics.calculate_bias_score(snapshot) == 0.0

    def test_capped_at_one(self, engine):
        snapshot = PreferenceSnapshot(tag_weights={"a": 1.5, "b": 0.01, "c": 0.01})
        assert engine.diagnostics.calculate_bias_score(snapshot) == 1.0


# =============================================================================
# Learning Metrics
# =============================================================================

class TestLearningMetrics:
    @pytest.mark.asyncio
    async def test_empty_system(self, engine):
        metrics = await engine.get_learning_metrics()

        assert metrics.total_events == 0
        assert metrics.feedback_rate == 0.0
        assert metrics.average_quality == 0.0
        assert metrics.diversity_score == 1.0
        assert metrics.bias_score == 0.0
        assert metrics.preference_stability == 1.0
        assert metrics.retrieval_coverage == 1.0

    @pytest.mark.asyncio
    async def test_user_metrics(self, engine, seeded_objects, make_event):
        first = make_event(["motif-blue-circle"], user_id="alice")
        make_event(["style-flat"], user_id="alice")
        make_event(["rule-stroke"], user_id="bob")
        await engine.submit_feedback(first.id, "kept", user_id="alice")

        metrics = await engine.get_learning_metrics("alice")

        assert metrics.total_events == 2
        assert metrics.feedback_rate == pytest.approx(0.5)
        assert metrics.average_quality == pytest.approx((0.8 + 0.9) / 2)
        # alice has no stored snapshot yet
        assert metrics.preference_stability == 0.0
        assert metrics.retrieval_coverage == 1.0

    @pytest.mark.asyncio
    async def test_stability_grows_with_age(self, engine, backdate_preferences):
        engine.set_user_preference("alice", "blue", 0.5)
        assert engine.diagnostics.calculate_preference_stability("alice") == pytest.approx(0.0, abs=0.01)

        backdate_preferences("alice", days=15)
        assert engine.diagnostics.calculate_preference_stability("alice") == pytest.approx(0.5, abs=0.01)

        backdate_preferences("alice", days=90)
        assert engine.diagnostics.calculate_preference_stability("alice") == 1.0

    def test_retrieval_coverage_relative_to_active_objects(self, engine, knowledge_base, make_event):
        for i in range(20):
            knowledge_base.create_object(f"obj-{i}", "motif", f"Motif {i}", tags=["t"])
        make_event(["obj-0"], user_id="alice")

        # 1 distinct object / (20 * 0.1)
        assert engine.diagnostics.calculate_retrieval_coverage() == pytest.approx(0.5)

        make_event(["obj-1", "obj-2"], user_id="alice")
        assert engine.diagnostics.calculate_retrieval_coverage() == 1.0
