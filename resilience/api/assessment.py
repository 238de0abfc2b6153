from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, StrictInt, constr
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from resilience.core import audit
from resilience.core.cache import allow_attempt
from resilience.core.config import settings
from resilience.core.database import get_db
from resilience.core.tokens import SessionContext, current_session, open_session
from resilience.services.collector import get_area_questions, get_progress, save_responses
from resilience.services.redeemer import redeem_code
from resilience.services.scoring import ScoringResult, complete_session, get_results

router = APIRouter()

class RedeemRequest(BaseModel):
    code: Optional[constr(max_length=64)] = None
    token: Optional[constr(max_length=128)] = None  # direct-link token, wins over code

class RedeemResponse(BaseModel):
    session_token: str
    resumed: bool
    next_area_id: Optional[str] = None
    results_available: bool
    can_retake: bool
    attempt_number: int
    retake_error: Optional[str] = None

class AreaOut(BaseModel):
    id: str
    slug: str
    name: str
    description: Optional[str] = None

class QuestionOut(BaseModel):
    id: str
    text: str
    help_text: Optional[str] = None
    scale_type: str

class AreaQuestions(BaseModel):
    area: AreaOut
    questions: List[QuestionOut]

class ResponsesIn(BaseModel):
    responses: Dict[str, StrictInt]

class ResponsesSaved(BaseModel):
    saved: bool
    next_area_id: Optional[str] = None
    is_complete: bool

class CompleteOut(BaseModel):
    success: bool
    already_complete: bool = False
    results_available: bool

class ProgressArea(AreaOut):
    question_count: int

class ProgressOut(BaseModel):
    session_id: str
    attempt_number: int
    current_area_index: int
    is_complete: bool
    areas: List[ProgressArea]
    existing_responses: Dict[str, int]

class AreaScoreOut(BaseModel):
    area_id: str
    area_slug: str
    area_name: str
    score: float
    level_name: Optional[str] = None
    level_code: Optional[str] = None
    color_hex: Optional[str] = None

class ResultsOut(BaseModel):
    session_id: str
    overall_score: Optional[float] = None
    overall_level_name: Optional[str] = None
    overall_level_code: Optional[str] = None
    overall_color_hex: Optional[str] = None
    area_scores: List[AreaScoreOut]

def _client_id(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded: return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"

@router.post("/redeem", response_model=RedeemResponse)
def redeem(payload: RedeemRequest, request: Request, db: Session = Depends(get_db)):
    if not allow_attempt("redeem", _client_id(request), settings.REDEEM_ATTEMPTS_PER_MINUTE):
        raise HTTPException(429, "Too many attempts, please wait a minute and try again")
    outcome = redeem_code(db, payload.token or payload.code or "")
    return RedeemResponse(session_token=outcome.session_token, resumed=outcome.resumed, next_area_id=outcome.next_area_id,
                          results_available=outcome.results_available, can_retake=outcome.can_retake,
                          attempt_number=outcome.attempt_number, retake_error=outcome.retake_error)

@router.get("/progress", response_model=ProgressOut)
def progress(ctx: SessionContext = Depends(current_session), db: Session = Depends(get_db)):
    p = get_progress(db, ctx.session)
    return ProgressOut(session_id=p.session_id, attempt_number=p.attempt_number, current_area_index=p.current_area_index,
                       is_complete=p.is_complete, existing_responses=p.responses,
                       areas=[ProgressArea(id=a.id, slug=a.slug, name=a.name, description=a.description, question_count=a.question_count) for a in p.areas])

@router.get("/areas/{area_id}/questions", response_model=AreaQuestions)
def area_questions(area_id: str, ctx: SessionContext = Depends(current_session), db: Session = Depends(get_db)):
    area, questions = get_area_questions(db, area_id)
    return AreaQuestions(area=AreaOut(id=area.id, slug=area.slug, name=area.name, description=area.description),
                         questions=[QuestionOut(id=q.id, text=q.text, help_text=q.help_text, scale_type=q.scale_type) for q in questions])

@router.post("/areas/{area_id}/responses", response_model=ResponsesSaved)
def submit_responses(area_id: str, payload: ResponsesIn, ctx: SessionContext = Depends(open_session), db: Session = Depends(get_db)):
    result = save_responses(db, ctx.session, area_id, payload.responses)
    return ResponsesSaved(saved=True, next_area_id=result.next_area_id, is_complete=result.is_complete)

@router.post("/complete", response_model=CompleteOut)
def complete(ctx: SessionContext = Depends(current_session), db: Session = Depends(get_db)):
    result = complete_session(db, ctx.session.id)
    return CompleteOut(success=True, already_complete=result.already_complete, results_available=bool(result.area_scores))

def _results_out(result: ScoringResult) -> ResultsOut:
    return ResultsOut(session_id=result.session_id, overall_score=result.overall_score,
                      overall_level_name=result.overall_level_name, overall_level_code=result.overall_level_code,
                      overall_color_hex=result.overall_color_hex,
                      area_scores=[AreaScoreOut(area_id=a.area_id, area_slug=a.area_slug, area_name=a.area_name, score=a.score,
                                                level_name=a.level_name, level_code=a.level_code, color_hex=a.color_hex)
                                   for a in result.area_scores])

@router.get("/results", response_model=ResultsOut)
def results(ctx: SessionContext = Depends(current_session), db: Session = Depends(get_db)):
    result = get_results(db, ctx.session)
    audit.results_viewed(ctx.claims.code_id, result.session_id)
    return _results_out(result)
