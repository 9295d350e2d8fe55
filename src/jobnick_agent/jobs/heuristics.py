"""Rule-based listing scorer, an offline alternative to the AI prescreen."""

from typing import List

from jobnick_agent.core.models import EvaluationResult, EvaluationStage, ListingRecord, UserPreferences

TITLE_POINTS = 30
KEYWORD_POINTS = 40
EXCLUDED_PENALTY = 25
LOCATION_POINTS = 15
APPLY_THRESHOLD = 60


def _split(value: str) -> List[str]:
    return [part.strip() for part in (value or "").lower().split(",") if part.strip()]


class HeuristicScorer:
    """Keyword-count scoring against the user's preferences."""

    def __init__(self, apply_threshold: int = APPLY_THRESHOLD):
        self.apply_threshold = apply_threshold

    def score(
        self,
        record: ListingRecord,
        preferences: UserPreferences,
        stage: EvaluationStage = EvaluationStage.PRESCREEN,
    ) -> EvaluationResult:
        text = " ".join(
            [record.title, record.employer, record.location, record.description_text]
        ).lower()
        reasons = []
        score = 0

        titles = _split(preferences.job_titles)
        if titles:
            matched = [title for title in titles if title in text]
            if matched:
                score += TITLE_POINTS
                reasons.append(f"Title matches: {', '.join(matched)}")
            else:
                reasons.append("Title not matching preferred titles")

        keywords = _split(preferences.keywords)
        if keywords:
            matched = [keyword for keyword in keywords if keyword in text]
            score += round(len(matched) / len(keywords) * KEYWORD_POINTS)
            if matched:
                reasons.append(f"Matched keywords: {', '.join(matched)}")

        excluded = [keyword for keyword in _split(preferences.exclude_keywords) if keyword in text]
        if excluded:
            score -= EXCLUDED_PENALTY
            reasons.append(f"Contains excluded keywords: {', '.join(excluded)}")

        locations = _split(preferences.location_preference)
        if locations and any(location in text for location in locations):
            score += LOCATION_POINTS
            reasons.append("Location matches preference")

        score = max(0, min(100, score))
        decision = score >= self.apply_threshold
        return EvaluationResult(
            decision=decision,
            confidence=0.75 if decision else 0.55,
            score=score,
            rationale=" | ".join(reasons) or "Rule-based evaluation with limited info",
            stage=stage,
        )
