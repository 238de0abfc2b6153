from dataclasses import dataclass
from typing import List, Optional, Sequence
from sqlalchemy import select
from sqlalchemy.orm import Session
from resilience.core import audit
from resilience.core.auth import TokenData
from resilience.core.errors import InvalidInput, InvalidScoreRanges, NotFound
from resilience.models.orm import Area, ScoreRange

@dataclass
class RangeSpec:
    min_score: float
    max_score: float
    level_name: str
    level_code: str
    color_hex: Optional[str] = None
    id: Optional[str] = None  # None for a new range

def validate_partition(ranges: Sequence[RangeSpec]) -> List[RangeSpec]:
    """Return the ranges sorted by min_score, or raise if they are not a contiguous partition."""
    if not ranges:
        raise InvalidScoreRanges("At least one score range is required")
    for r in ranges:
        if not (r.level_name or "").strip() or not (r.level_code or "").strip():
            raise InvalidScoreRanges("Level name and code are required for all ranges")
        if r.min_score >= r.max_score:
            raise InvalidScoreRanges(f"Invalid range: min must be less than max for {r.level_name.strip()}")
    ordered = sorted(ranges, key=lambda r: r.min_score)
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.min_score != prev.max_score:
            kind = "gap" if cur.min_score > prev.max_score else "overlap"
            raise InvalidScoreRanges(f"Score ranges must be continuous without gaps or overlaps ({kind} at {prev.max_score})")
    return ordered

def list_score_ranges(db: Session, area_id: str) -> List[ScoreRange]:
    if db.get(Area, area_id) is None:
        raise NotFound("Area not found")
    return list(db.scalars(select(ScoreRange).where(ScoreRange.area_id == area_id).order_by(ScoreRange.min_score)).all())

def replace_score_ranges(db: Session, area_id: str, ranges: Sequence[RangeSpec], actor: TokenData) -> List[ScoreRange]:
    area = db.get(Area, area_id)
    if area is None:
        raise NotFound("Area not found")
    ordered = validate_partition(ranges)

    existing = {r.id: r for r in db.scalars(select(ScoreRange).where(ScoreRange.area_id == area_id))}
    keep = {r.id for r in ordered if r.id}
    unknown = keep - set(existing)
    if unknown:
        raise InvalidInput(f"Unknown score range id: {sorted(unknown)[0]}")

    for range_id, row in existing.items():
        if range_id not in keep:
            db.delete(row)
    db.flush()
    for spec in ordered:
        row = existing.get(spec.id) if spec.id else None
        if row is None:
            row = ScoreRange(area_id=area_id)
            db.add(row)
        row.min_score = spec.min_score
        row.max_score = spec.max_score
        row.level_name = spec.level_name.strip()
        row.level_code = spec.level_code.strip()
        row.color_hex = spec.color_hex or None
    area_name = area.name
    db.commit()
    audit.score_ranges_updated(actor.sub, area_id, area_name, len(ordered))
    return list_score_ranges(db, area_id)
