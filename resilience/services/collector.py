import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional
from uuid import uuid4
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session
from resilience.core.errors import InvalidQuestion, NotFound, OutOfRange, SessionClosed, SessionNotFound
from resilience.models.orm import Area, AssessmentSession, Question, Response, scale_max, utcnow
from resilience.services.catalog import active_areas, active_questions

logger = logging.getLogger(__name__)

@dataclass
class SaveResult:
    saved: int
    next_area_id: Optional[str]
    is_complete: bool  # last area submitted, ready for scoring
    current_area_index: int

def get_area(db: Session, area_id: str) -> Area:
    area = db.get(Area, area_id)
    if area is None or not area.is_active:
        raise NotFound("Area not found")
    return area

def get_area_questions(db: Session, area_id: str):
    area = get_area(db, area_id)
    return area, active_questions(db, area_id)

def validate_responses(questions: List[Question], responses: Mapping[str, int]) -> Dict[str, int]:
    """Check every entry against the area's active questions. Nothing is written here."""
    by_id = {q.id: q for q in questions}
    clean: Dict[str, int] = {}
    for question_id, value in responses.items():
        question = by_id.get(question_id)
        if question is None:
            raise InvalidQuestion(question_id)
        top = scale_max(question.scale_type)
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= top:
            raise OutOfRange(question_id, value, top)
        clean[question_id] = value
    return clean

def _upsert_responses(db: Session, session_id: str, clean: Mapping[str, int]) -> None:
    """Insert or overwrite one row per (session, question) in a single statement."""
    insert = sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert
    now = utcnow()
    stmt = insert(Response).values([
        {"id": str(uuid4()), "session_id": session_id, "question_id": q, "response_value": v, "updated_at": now}
        for q, v in clean.items()
    ])
    stmt = stmt.on_conflict_do_update(
        index_elements=[Response.session_id, Response.question_id],
        set_={"response_value": stmt.excluded.response_value, "updated_at": stmt.excluded.updated_at},
    )
    db.execute(stmt)

def save_responses(db: Session, session: AssessmentSession, area_id: str, responses: Mapping[str, int]) -> SaveResult:
    # Lock and re-read; a concurrent completion may have closed the session.
    session = db.scalar(select(AssessmentSession).where(AssessmentSession.id == session.id)
                        .with_for_update().execution_options(populate_existing=True))
    if session is None:
        raise SessionNotFound()
    if session.is_complete:
        raise SessionClosed()
    get_area(db, area_id)
    clean = validate_responses(active_questions(db, area_id), responses)
    if clean:
        _upsert_responses(db, session.id, clean)

    area_ids = [a.id for a in active_areas(db)]
    index = area_ids.index(area_id)
    is_last = index == len(area_ids) - 1
    target = index if is_last else index + 1
    session.current_area_index = max(session.current_area_index, target)
    db.commit()
    logger.debug("Saved %d responses for session %s area %s", len(clean), session.id, area_id)
    return SaveResult(saved=len(clean), next_area_id=None if is_last else area_ids[index + 1],
                      is_complete=is_last, current_area_index=session.current_area_index)

@dataclass
class AreaProgress:
    id: str
    slug: str
    name: str
    description: Optional[str]
    question_count: int

@dataclass
class Progress:
    session_id: str
    attempt_number: int
    current_area_index: int
    is_complete: bool
    areas: List[AreaProgress]
    responses: Dict[str, int]

def get_progress(db: Session, session: AssessmentSession) -> Progress:
    counts = dict(db.execute(select(Question.area_id, func.count(Question.id))
                             .where(Question.is_active.is_(True)).group_by(Question.area_id)).all())
    areas = [AreaProgress(a.id, a.slug, a.name, a.description, counts.get(a.id, 0)) for a in active_areas(db)]
    answers = {r.question_id: r.response_value
               for r in db.scalars(select(Response).where(Response.session_id == session.id))}
    return Progress(session_id=session.id, attempt_number=session.attempt_number,
                    current_area_index=session.current_area_index, is_complete=session.is_complete,
                    areas=areas, responses=answers)
