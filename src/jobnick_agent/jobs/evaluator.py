"""Two-stage AI screening of job listings."""

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from jobnick_agent.config import settings
from jobnick_agent.core.errors import CompletionError
from jobnick_agent.core.events import StatusChannel
from jobnick_agent.core.models import (
    EvaluationResult,
    EvaluationStage,
    ListingRecord,
    TabResource,
    UserPreferences,
    UserProfile,
)
from jobnick_agent.jobs.completion import TextCompletionService
from jobnick_agent.jobs.extractor import ContentExtractor
from jobnick_agent.jobs.heuristics import HeuristicScorer
from jobnick_agent.jobs.prompts import build_deep_prompt, build_prescreen_prompt
from jobnick_agent.memory.store import ProcessedSet
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIDENCE = 0.5
MISSING_CREDENTIAL = "Missing API credential for the screening model"

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_AFFIRMATIVE_RE = re.compile(r"\b(?:yes|apply|true)\b", re.IGNORECASE)
_NEGATIVE_RE = re.compile(r"(?:\bdon't\b|\bno\b|\bnot\b|\bfalse\b)", re.IGNORECASE)


@dataclass
class EvaluationOutcome:
    """Both stages for one listing; ``final`` is what actions are gated on."""
    record: ListingRecord
    prescreen: EvaluationResult
    deep: Optional[EvaluationResult] = None
    degraded: bool = False

    @property
    def final(self) -> EvaluationResult:
        return self.deep if self.deep is not None else self.prescreen

    def qualifies(self, confidence_threshold: float) -> bool:
        final = self.final
        return (
            final.stage == EvaluationStage.DEEP
            and final.decision
            and final.confidence > confidence_threshold
        )


def negative_result(stage: EvaluationStage, reason: str) -> EvaluationResult:
    return EvaluationResult(decision=False, confidence=0.0, score=0, rationale=reason, stage=stage)


def _json_objects(text: str) -> Iterator[str]:
    """Balanced ``{...}`` spans in order of their opening brace."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    yield text[start:index + 1]
                    break
        start = text.find("{", start + 1)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _from_mapping(data: Dict[str, Any], stage: EvaluationStage) -> EvaluationResult:
    decision = _as_bool(data.get("shouldApply", data.get("decision", False)))
    confidence = data.get("confidence")
    if confidence is None:
        confidence = DEFAULT_CONFIDENCE
    score = data.get("score")
    if score is None:
        try:
            score = float(confidence) * 100
        except (TypeError, ValueError, OverflowError):
            score = 0
    rationale = data.get("reasoning") or data.get("rationale") or ""
    return EvaluationResult(
        decision=decision,
        confidence=confidence,
        score=score,
        rationale=str(rationale),
        stage=stage,
    )


def _lexical_fallback(text: str, stage: EvaluationStage) -> EvaluationResult:
    affirmative = len(_AFFIRMATIVE_RE.findall(text))
    negative = len(_NEGATIVE_RE.findall(text))
    decision = affirmative > negative

    confidence = DEFAULT_CONFIDENCE
    for token in _NUMBER_RE.findall(text):
        value = float(token)
        if 0.0 <= value <= 1.0:
            confidence = value
            break

    return EvaluationResult(
        decision=decision,
        confidence=confidence,
        score=round(confidence * 100),
        rationale=text.strip()[:1000],
        stage=stage,
    )


def parse_result(text: Optional[str], stage: EvaluationStage) -> EvaluationResult:
    """
    Parse a screening response. Never raises.

    The first JSON object inside a fenced block is read as the structured
    result, then the first one anywhere in the text. Anything else falls
    back to counting affirmative and negative words.
    """
    text = text or ""
    fenced = _FENCE_RE.search(text)
    candidates = [fenced.group(1), text] if fenced else [text]

    for candidate in candidates:
        for block in _json_objects(candidate):
            try:
                data = json.loads(block)
            except ValueError:
                continue
            if isinstance(data, dict):
                return _from_mapping(data, stage)

    logger.debug("No structured block in response, using lexical fallback", stage=stage.value)
    return _lexical_fallback(text, stage)


class TwoStageEvaluator:
    """
    Cheap prescreen on card fields, then a deep screen on the full listing.

    The prescreen is a hard gate: a negative prescreen marks the listing
    processed without any detail extraction or deep call.
    """

    def __init__(
        self,
        completion: TextCompletionService,
        extractor: ContentExtractor,
        processed: ProcessedSet,
        events: Optional[StatusChannel] = None,
        batch_size: Optional[int] = None,
        inter_batch_delay: Optional[float] = None,
        resume_max_chars: Optional[int] = None,
        description_max_chars: Optional[int] = None,
        heuristic: Optional[HeuristicScorer] = None,
    ):
        self.completion = completion
        if heuristic is None and settings.heuristic_prescreen:
            heuristic = HeuristicScorer()
        self.heuristic = heuristic
        self.extractor = extractor
        self.processed = processed
        self.events = events or StatusChannel()
        self.batch_size = max(1, batch_size or settings.prescreen_batch_size)
        self.inter_batch_delay = (
            settings.inter_batch_delay_seconds if inter_batch_delay is None else inter_batch_delay
        )
        self.resume_max_chars = resume_max_chars or settings.resume_max_chars
        self.description_max_chars = description_max_chars or settings.description_max_chars
        self.logger = logger.bind(component="two_stage_evaluator")

    parse_result = staticmethod(parse_result)

    async def prescreen(
        self,
        record: ListingRecord,
        profile: Optional[UserProfile],
        preferences: UserPreferences,
    ) -> EvaluationResult:
        if self.heuristic is not None:
            return self.heuristic.score(record, preferences, EvaluationStage.PRESCREEN)
        prompt = build_prescreen_prompt(record, preferences)
        return await self._screen(prompt, EvaluationStage.PRESCREEN, record)

    async def deep_screen(
        self,
        record: ListingRecord,
        resume_text: str,
        profile: Optional[UserProfile],
        preferences: UserPreferences,
    ) -> EvaluationResult:
        prompt = build_deep_prompt(
            record,
            resume_text,
            profile,
            preferences,
            resume_max_chars=self.resume_max_chars,
            description_max_chars=self.description_max_chars,
        )
        return await self._screen(prompt, EvaluationStage.DEEP, record)

    async def evaluate(
        self,
        record: ListingRecord,
        resource: TabResource,
        profile: Optional[UserProfile],
        preferences: UserPreferences,
        resume_text: str = "",
    ) -> EvaluationOutcome:
        """Run both stages for a single listing and mark it processed."""
        first = await self.prescreen(record, profile, preferences)
        if not first.decision:
            await self.processed.mark(record.identity)
            return EvaluationOutcome(record=record, prescreen=first)
        return await self._deep_stage(record, first, resource, profile, preferences, resume_text)

    async def evaluate_batch(
        self,
        records: List[ListingRecord],
        resource: TabResource,
        profile: Optional[UserProfile],
        preferences: UserPreferences,
        resume_text: str = "",
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> List[EvaluationOutcome]:
        """
        Evaluate unseen listings.

        Prescreens run concurrently in fixed-size batches with a pause between
        batches. Deep screens run one at a time since they drive the shared
        tab. ``should_continue`` is polled before each batch and each deep
        screen; listings not reached stay unprocessed.
        """
        pending: List[ListingRecord] = []
        seen = set()
        for record in records:
            if record.identity in self.processed or record.identity in seen:
                continue
            seen.add(record.identity)
            pending.append(record)

        outcomes: List[EvaluationOutcome] = []
        shortlisted: List[tuple] = []

        for start in range(0, len(pending), self.batch_size):
            if should_continue is not None and not should_continue():
                return outcomes
            batch = pending[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self.prescreen(record, profile, preferences) for record in batch)
            )
            for record, result in zip(batch, results):
                if result.decision:
                    shortlisted.append((record, result))
                else:
                    await self.processed.mark(record.identity)
                    outcomes.append(EvaluationOutcome(record=record, prescreen=result))

            self.logger.info(
                "Prescreen batch complete",
                batch=start // self.batch_size + 1,
                size=len(batch),
                passed=sum(1 for result in results if result.decision),
            )
            if start + self.batch_size < len(pending) and self.inter_batch_delay:
                await asyncio.sleep(self.inter_batch_delay)

        if pending:
            self.events.info(f"Prescreened {len(pending)} listing(s); {len(shortlisted)} passed")

        for record, first in shortlisted:
            if should_continue is not None and not should_continue():
                break
            outcomes.append(
                await self._deep_stage(record, first, resource, profile, preferences, resume_text)
            )
        return outcomes

    async def _deep_stage(
        self,
        record: ListingRecord,
        first: EvaluationResult,
        resource: TabResource,
        profile: Optional[UserProfile],
        preferences: UserPreferences,
        resume_text: str,
    ) -> EvaluationOutcome:
        detail = await self.extractor.extract_detail(resource, record)
        deep = await self.deep_screen(detail.record, resume_text, profile, preferences)
        await self.processed.mark(record.identity)

        self.logger.info(
            "Deep screen complete",
            identity=record.identity,
            decision=deep.decision,
            confidence=deep.confidence,
            degraded=detail.degraded,
        )
        return EvaluationOutcome(
            record=detail.record,
            prescreen=first,
            deep=deep,
            degraded=detail.degraded,
        )

    async def _screen(self, prompt: str, stage: EvaluationStage, record: ListingRecord) -> EvaluationResult:
        if not self.completion.is_configured:
            self.events.error(MISSING_CREDENTIAL)
            return negative_result(stage, MISSING_CREDENTIAL)

        try:
            response = await self.completion.complete(prompt)
        except CompletionError as e:
            self.logger.warning("Screening call failed", stage=stage.value, identity=record.identity, error=str(e))
            self.events.warning(f"Screening failed for '{record.title}': {e}")
            return negative_result(stage, str(e))
        except Exception as e:
            self.logger.error("Unexpected screening failure", stage=stage.value, identity=record.identity, error=str(e))
            self.events.error(f"Screening failed for '{record.title}': {e}")
            return negative_result(stage, str(e))

        return parse_result(response, stage)
