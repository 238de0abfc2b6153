from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session
from resilience.models.orm import Area, Question

def active_areas(db: Session) -> List[Area]:
    return list(db.scalars(select(Area).where(Area.is_active.is_(True)).order_by(Area.display_order, Area.id)).all())

def active_questions(db: Session, area_id: str) -> List[Question]:
    stmt = (select(Question)
            .where(Question.area_id == area_id, Question.is_active.is_(True))
            .order_by(Question.display_order, Question.id))
    return list(db.scalars(stmt).all())

def area_at(db: Session, index: int) -> Optional[Area]:
    areas = active_areas(db)
    return areas[index] if 0 <= index < len(areas) else None
