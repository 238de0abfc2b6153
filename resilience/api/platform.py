from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import List, Optional
from sqlalchemy.orm import Session
from resilience.core.auth import require_roles, TokenData, PLATFORM_OWNER
from resilience.core.database import get_db
from resilience.services.ordering import reorder_sub_areas
from resilience.services.score_ranges import RangeSpec, list_score_ranges, replace_score_ranges

router = APIRouter()

class ScoreRangeIn(BaseModel):
    id: Optional[str] = None
    min_score: float
    max_score: float
    level_name: str
    level_code: str
    color_hex: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")

class ScoreRangeOut(ScoreRangeIn):
    id: str

class ScoreRanges(BaseModel):
    score_ranges: List[ScoreRangeIn]

class ScoreRangesOut(BaseModel):
    area_id: str
    score_ranges: List[ScoreRangeOut]

class SubAreaOrder(BaseModel):
    sub_area_ids: List[str]

class SubAreaOut(BaseModel):
    id: str
    slug: str
    name: str
    display_order: int

def _ranges_out(area_id: str, rows) -> ScoreRangesOut:
    return ScoreRangesOut(area_id=area_id, score_ranges=[
        ScoreRangeOut(id=r.id, min_score=r.min_score, max_score=r.max_score, level_name=r.level_name,
                      level_code=r.level_code, color_hex=r.color_hex) for r in rows])

@router.get("/areas/{area_id}/score-ranges", response_model=ScoreRangesOut, dependencies=[Depends(require_roles(PLATFORM_OWNER))])
def get_score_ranges(area_id: str, db: Session = Depends(get_db)):
    return _ranges_out(area_id, list_score_ranges(db, area_id))

@router.put("/areas/{area_id}/score-ranges", response_model=ScoreRangesOut)
def put_score_ranges(area_id: str, payload: ScoreRanges, user: TokenData = Depends(require_roles(PLATFORM_OWNER)), db: Session = Depends(get_db)):
    specs = [RangeSpec(min_score=r.min_score, max_score=r.max_score, level_name=r.level_name, level_code=r.level_code,
                       color_hex=r.color_hex, id=r.id) for r in payload.score_ranges]
    return _ranges_out(area_id, replace_score_ranges(db, area_id, specs, user))

@router.put("/areas/{area_id}/sub-areas/order", response_model=List[SubAreaOut])
def put_sub_area_order(area_id: str, payload: SubAreaOrder, user: TokenData = Depends(require_roles(PLATFORM_OWNER)), db: Session = Depends(get_db)):
    rows = reorder_sub_areas(db, area_id, payload.sub_area_ids, user)
    return [SubAreaOut(id=s.id, slug=s.slug, name=s.name, display_order=s.display_order) for s in rows]
