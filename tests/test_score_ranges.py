import pytest

from resilience.core.errors import InvalidInput, InvalidScoreRanges, NotFound
from resilience.services.score_ranges import RangeSpec, list_score_ranges, replace_score_ranges, validate_partition


def spec(lo, hi, name="Level", code="level", **kw):
    return RangeSpec(min_score=lo, max_score=hi, level_name=name, level_code=code, **kw)


def test_contiguous_partition_accepted():
    ordered = validate_partition([spec(5, 10, "High", "high"), spec(0, 5, "Low", "low")])
    assert [r.level_code for r in ordered] == ["low", "high"]


def test_gap_rejected():
    with pytest.raises(InvalidScoreRanges) as exc:
        validate_partition([spec(0, 3), spec(4, 10)])
    assert "gap" in exc.value.message


def test_overlap_rejected():
    with pytest.raises(InvalidScoreRanges) as exc:
        validate_partition([spec(0, 5), spec(4, 10)])
    assert "overlap" in exc.value.message


@pytest.mark.parametrize("ranges", [
    [],
    [spec(0, 5, name="  ")],
    [spec(0, 5, code="")],
    [spec(5, 5)],
    [spec(6, 2)],
])
def test_malformed_ranges_rejected(ranges):
    with pytest.raises(InvalidScoreRanges):
        validate_partition(ranges)


def test_replace_updates_inserts_and_deletes(db, catalog, owner, audit_events):
    developing, strong = list_score_ranges(db, catalog.emotional_id)

    rows = replace_score_ranges(db, catalog.emotional_id, [
        spec(0, 2.5, " Emerging ", "emerging"),
        spec(2.5, 4, "Developing", "developing", id=developing.id),
        spec(4, 5, "Thriving", "thriving", color_hex="#00AA00"),
    ], owner)

    assert [(r.min_score, r.max_score, r.level_name) for r in rows] == \
        [(0, 2.5, "Emerging"), (2.5, 4, "Developing"), (4, 5, "Thriving")]
    assert rows[1].id == developing.id
    assert strong.id not in {r.id for r in rows}
    assert audit_events[-1].event_type == "score_ranges_updated"
    assert audit_events[-1].data == {"area_name": "Emotional", "range_count": 3}


def test_invalid_replacement_leaves_ranges_untouched(db, catalog, owner):
    before = [(r.id, r.min_score, r.max_score) for r in list_score_ranges(db, catalog.emotional_id)]
    with pytest.raises(InvalidScoreRanges):
        replace_score_ranges(db, catalog.emotional_id, [spec(0, 3), spec(4, 5)], owner)
    db.expire_all()
    assert [(r.id, r.min_score, r.max_score) for r in list_score_ranges(db, catalog.emotional_id)] == before


def test_unknown_range_id_rejected(db, catalog, owner):
    with pytest.raises(InvalidInput):
        replace_score_ranges(db, catalog.emotional_id, [spec(0, 5, id="not-a-range")], owner)


def test_unknown_area(db, catalog, owner):
    with pytest.raises(NotFound):
        replace_score_ranges(db, "missing", [spec(0, 5)], owner)
    with pytest.raises(NotFound):
        list_score_ranges(db, "missing")
