"""Tests for the rule-based heuristic scorer."""

from hypothesis import given, strategies as st

from jobnick_agent.core.models import EvaluationStage, UserPreferences
from jobnick_agent.jobs.extractor import normalize_listing
from jobnick_agent.jobs.heuristics import HeuristicScorer

from conftest import make_job


class TestHeuristicScorer:
    """Test cases for keyword scoring."""

    def test_full_match_recommends_applying(self):
        record = normalize_listing(make_job(1))
        preferences = UserPreferences(
            job_titles="python developer", keywords="python, fastapi", location_preference="tel aviv"
        )

        result = HeuristicScorer().score(record, preferences)

        assert result.score == 85
        assert result.decision is True
        assert result.confidence == 0.75
        assert result.stage == EvaluationStage.PRESCREEN
        assert "Title matches" in result.rationale

    def test_excluded_keywords_penalize(self):
        record = normalize_listing(make_job(1))
        preferences = UserPreferences(
            job_titles="python developer", keywords="python, fastapi", exclude_keywords="backend"
        )

        result = HeuristicScorer().score(record, preferences)

        assert result.score == 45
        assert result.decision is False
        assert result.confidence == 0.55
        assert "excluded" in result.rationale

    def test_partial_keyword_credit(self):
        record = normalize_listing(make_job(1))
        preferences = UserPreferences(keywords="python, rust, go lang, kotlin")

        assert HeuristicScorer().score(record, preferences).score == 10

    def test_empty_preferences(self):
        result = HeuristicScorer().score(normalize_listing(make_job(1)), UserPreferences())

        assert result.score == 0
        assert result.decision is False
        assert result.rationale == "Rule-based evaluation with limited info"

    @given(
        titles=st.text(max_size=30),
        keywords=st.text(max_size=30),
        excluded=st.text(max_size=30),
        locations=st.text(max_size=30),
    )
    def test_score_is_bounded(self, titles, keywords, excluded, locations):
        preferences = UserPreferences(
            job_titles=titles, keywords=keywords, exclude_keywords=excluded, location_preference=locations
        )

        result = HeuristicScorer().score(normalize_listing(make_job(1)), preferences, EvaluationStage.DEEP)

        assert 0 <= result.score <= 100
        assert result.decision == (result.score >= 60)
        assert result.stage == EvaluationStage.DEEP
