"""
Scoring engine.

An area's score is the weighted mean of its answered questions' effective
values, where a reverse-scored answer ``v`` on a scale topping out at ``m``
counts as ``m + 1 - v``. The score is then placed in the area's score-range
partition: each range covers ``[min, max)`` except the last, which also
includes its ``max`` so the top of the scale has a level.

The overall score is the mean of the area scores. Its level comes from the
mean of each area score as a percentage of its scale top, placed in fixed
bands (see ``OVERALL_LEVELS``) because areas may use different scales.

Areas nobody answered are skipped rather than scored as zero. Completing a
session writes one immutable Score row per scored area and flips
``is_complete``; completing it again returns what was stored.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from resilience.core import audit
from resilience.core.config import settings
from resilience.core.errors import NotFound, SessionNotFound
from resilience.models.orm import AccessCode, Area, AssessmentSession, Question, Response, Score, ScoreRange, scale_max, utcnow

logger = logging.getLogger(__name__)

@dataclass
class AreaScore:
    area_id: str
    area_slug: str
    area_name: str
    score: float
    level_name: Optional[str] = None
    level_code: Optional[str] = None
    color_hex: Optional[str] = None
    score_range_id: Optional[str] = None

@dataclass
class ScoringResult:
    session_id: str
    overall_score: Optional[float]
    area_scores: List[AreaScore] = field(default_factory=list)
    already_complete: bool = False
    overall_level_name: Optional[str] = None
    overall_level_code: Optional[str] = None
    overall_color_hex: Optional[str] = None

# (minimum percent of scale, name, code, colour), highest band first
OVERALL_LEVELS = [
    (80, "Exceptional", "exceptional", "#2ECC71"),
    (60, "Strong", "strong", "#4ECDC4"),
    (40, "Emerging", "emerging", "#FFE66D"),
    (0, "Developing", "developing", "#FF6B6B"),
]

def overall_level(percent: float) -> Tuple[str, str, str]:
    for threshold, name, code, color in OVERALL_LEVELS:
        if percent >= threshold:
            return name, code, color
    return OVERALL_LEVELS[-1][1:]

def effective_value(value: int, top: int, reverse: bool) -> int:
    return top + 1 - value if reverse else value

def weighted_mean(pairs: Iterable[Tuple[float, float]]) -> Optional[float]:
    total = weights = 0.0
    for value, weight in pairs:
        total += value * weight
        weights += weight
    if weights <= 0:
        return None
    return total / weights

def resolve_range(score: float, ranges: Sequence):
    """Pick the range containing ``score``; None when it falls outside the partition."""
    ordered = sorted(ranges, key=lambda r: r.min_score)
    for r in ordered:
        if r.min_score <= score < r.max_score:
            return r
    if ordered and score == ordered[-1].max_score:
        return ordered[-1]
    return None

def calculate_scores(db: Session, session_id: str) -> ScoringResult:
    """Compute, without writing, the per-area scores for a session's stored responses."""
    if db.get(AssessmentSession, session_id) is None:
        raise SessionNotFound()
    rows = db.execute(
        select(Response.response_value, Question.area_id, Question.scale_type, Question.weight, Question.is_reverse_scored)
        .join(Question, Question.id == Response.question_id)
        .where(Response.session_id == session_id)
    ).all()

    by_area: Dict[str, List[Tuple[float, float]]] = defaultdict(list)
    tops: Dict[str, int] = {}
    for value, area_id, scale_type, weight, reverse in rows:
        top = scale_max(scale_type)
        by_area[area_id].append((effective_value(value, top, reverse), float(weight)))
        tops[area_id] = max(tops.get(area_id, 0), top)
    if not by_area:
        return ScoringResult(session_id=session_id, overall_score=None)

    areas = db.scalars(select(Area).where(Area.id.in_(list(by_area))).order_by(Area.display_order, Area.id)).all()
    ranges: Dict[str, List[ScoreRange]] = defaultdict(list)
    for r in db.scalars(select(ScoreRange).where(ScoreRange.area_id.in_(list(by_area)))):
        ranges[r.area_id].append(r)

    area_scores = []
    for area in areas:
        mean = weighted_mean(by_area[area.id])
        if mean is None:
            logger.warning("Area %s has no weighted answers in session %s, skipping", area.slug, session_id)
            continue
        score = round(mean, settings.SCORE_PRECISION)
        level = resolve_range(score, ranges[area.id])
        if level is None:
            logger.warning("Score %s for area %s falls outside its score ranges", score, area.slug)
        area_scores.append(AreaScore(
            area_id=area.id, area_slug=area.slug, area_name=area.name, score=score,
            level_name=level.level_name if level else None, level_code=level.level_code if level else None,
            color_hex=level.color_hex if level else None, score_range_id=level.id if level else None,
        ))

    result = ScoringResult(session_id=session_id, overall_score=None, area_scores=area_scores)
    if area_scores:
        result.overall_score = round(sum(a.score for a in area_scores) / len(area_scores), settings.SCORE_PRECISION)
        percent = round(sum(a.score / tops[a.area_id] * 100 for a in area_scores) / len(area_scores), settings.SCORE_PRECISION)
        result.overall_level_name, result.overall_level_code, result.overall_color_hex = overall_level(percent)
    return result

def stored_result(db: Session, session: AssessmentSession) -> ScoringResult:
    rows = db.execute(select(Score, Area).join(Area, Area.id == Score.area_id)
                      .where(Score.session_id == session.id).order_by(Area.display_order, Area.id)).all()
    return ScoringResult(
        session_id=session.id, overall_score=session.overall_score,
        overall_level_name=session.overall_level_name, overall_level_code=session.overall_level_code,
        overall_color_hex=session.overall_color_hex,
        area_scores=[AreaScore(area_id=a.id, area_slug=a.slug, area_name=a.name, score=s.value,
                               level_name=s.level_name, level_code=s.level_code, color_hex=s.color_hex,
                               score_range_id=s.score_range_id) for s, a in rows],
    )

def complete_session(db: Session, session_id: str) -> ScoringResult:
    session = db.scalar(select(AssessmentSession).where(AssessmentSession.id == session_id)
                        .with_for_update().execution_options(populate_existing=True))
    if session is None:
        raise SessionNotFound()
    if session.is_complete:
        result = stored_result(db, session)
        result.already_complete = True
        return result

    result = calculate_scores(db, session.id)
    for a in result.area_scores:
        db.add(Score(session_id=session.id, area_id=a.area_id, score_range_id=a.score_range_id, value=a.score,
                     level_name=a.level_name, level_code=a.level_code, color_hex=a.color_hex))
    session.is_complete = True
    session.completed_at = utcnow()
    session.overall_score = result.overall_score
    session.overall_level_name = result.overall_level_name
    session.overall_level_code = result.overall_level_code
    session.overall_color_hex = result.overall_color_hex
    code = db.get(AccessCode, session.access_code_id)
    code_id, cohort_id = code.id, code.cohort_id
    db.commit()
    logger.info("Scored session %s across %d areas", session_id, len(result.area_scores))
    audit.assessment_completed(code_id, session_id, cohort_id)
    return result

def get_results(db: Session, session: AssessmentSession) -> ScoringResult:
    """Stored results for the session, or for the code's latest completed attempt."""
    target = session
    if not session.is_complete:
        target = db.scalar(select(AssessmentSession)
                           .where(AssessmentSession.access_code_id == session.access_code_id,
                                  AssessmentSession.is_complete.is_(True))
                           .order_by(AssessmentSession.attempt_number.desc()).limit(1))
        if target is None:
            raise NotFound("No completed assessment found. Please complete the assessment first.")
    return stored_result(db, target)
