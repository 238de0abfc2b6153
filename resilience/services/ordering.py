from typing import List, Sequence
from sqlalchemy import select
from sqlalchemy.orm import Session
from resilience.core import audit
from resilience.core.auth import TokenData
from resilience.core.errors import InvalidInput, NotFound
from resilience.models.orm import Area, SubArea

def two_phase_reorder(db: Session, rows: Sequence, ordered_ids: Sequence[str], attr: str = "display_order") -> None:
    """Give rows positions 1..n in ``ordered_ids`` order without tripping a unique order constraint.

    Every row first moves above the highest position in use, then to its final
    position. Runs inside the caller's transaction.
    """
    by_id = {r.id: r for r in rows}
    staging = max([getattr(r, attr) or 0 for r in rows] + [len(rows)]) + 1
    for i, row_id in enumerate(ordered_ids):
        setattr(by_id[row_id], attr, staging + i)
    db.flush()
    for i, row_id in enumerate(ordered_ids):
        setattr(by_id[row_id], attr, i + 1)
    db.flush()

def reorder_sub_areas(db: Session, area_id: str, ordered_ids: List[str], actor: TokenData) -> List[SubArea]:
    if db.get(Area, area_id) is None:
        raise NotFound("Area not found")
    rows = list(db.scalars(select(SubArea).where(SubArea.area_id == area_id)).all())
    if len(set(ordered_ids)) != len(ordered_ids) or set(ordered_ids) != {r.id for r in rows}:
        raise InvalidInput("Sub-area IDs must list every sub-area of the area exactly once")
    two_phase_reorder(db, rows, ordered_ids)
    db.commit()
    audit.sub_areas_reordered(actor.sub, area_id, ordered_ids)
    return list(db.scalars(select(SubArea).where(SubArea.area_id == area_id).order_by(SubArea.display_order)).all())
