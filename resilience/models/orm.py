import enum
from datetime import datetime, timezone
from uuid import uuid4
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, Float, DateTime, ForeignKey, UniqueConstraint

class Base(DeclarativeBase): pass

def _uuid() -> str: return str(uuid4())
def utcnow() -> datetime: return datetime.now(timezone.utc)

def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; every timestamp we write is UTC.
    if value is None or value.tzinfo is not None: return value
    return value.replace(tzinfo=timezone.utc)

class CodeStatus(str, enum.Enum):
    UNUSED = "unused"
    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"

class ScaleType(str, enum.Enum):
    LIKERT_5 = "likert_5"
    LIKERT_7 = "likert_7"

SCALE_MAX = {ScaleType.LIKERT_5.value: 5, ScaleType.LIKERT_7.value: 7}

def scale_max(scale_type: str) -> int:
    return SCALE_MAX.get(scale_type, 5)

class Organization(Base):
    __tablename__ = "organizations"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255))

class Cohort(Base):
    __tablename__ = "cohorts"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_id: Mapped[str] = mapped_column(String(36), ForeignKey("organizations.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_retakes: Mapped[bool] = mapped_column(Boolean, default=False)
    max_retakes: Mapped[int] = mapped_column(Integer, default=0)  # 0 = unlimited
    retake_cooldown_days: Mapped[int] = mapped_column(Integer, default=0)
    access_starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    access_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

class AccessCode(Base):
    __tablename__ = "access_codes"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    token_hash: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)  # sha256 of the direct-link token
    cohort_id: Mapped[str] = mapped_column(String(36), ForeignKey("cohorts.id"), index=True)
    status: Mapped[str] = mapped_column(String(16), default=CodeStatus.UNUSED.value)
    times_used: Mapped[int] = mapped_column(Integer, default=0)
    max_uses: Mapped[int] = mapped_column(Integer, default=1)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    first_accessed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_accessed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

class AssessmentSession(Base):
    __tablename__ = "assessment_sessions"
    __table_args__ = (UniqueConstraint("access_code_id", "attempt_number", name="uq_session_code_attempt"),)
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    access_code_id: Mapped[str] = mapped_column(String(36), ForeignKey("access_codes.id"), index=True)
    attempt_number: Mapped[int] = mapped_column(Integer, default=1)
    current_area_index: Mapped[int] = mapped_column(Integer, default=0)
    is_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    overall_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    overall_level_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    overall_level_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    overall_color_hex: Mapped[str | None] = mapped_column(String(7), nullable=True)

class Area(Base):
    __tablename__ = "areas"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    slug: Mapped[str] = mapped_column(String(64), unique=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class SubArea(Base):
    __tablename__ = "sub_areas"
    __table_args__ = (UniqueConstraint("area_id", "display_order", name="uq_sub_area_order"),)
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    area_id: Mapped[str] = mapped_column(String(36), ForeignKey("areas.id"), index=True)
    slug: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(255))
    display_order: Mapped[int] = mapped_column(Integer)

class Question(Base):
    __tablename__ = "questions"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    area_id: Mapped[str] = mapped_column(String(36), ForeignKey("areas.id"), index=True)
    text: Mapped[str] = mapped_column(Text)
    help_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    scale_type: Mapped[str] = mapped_column(String(16), default=ScaleType.LIKERT_5.value)
    weight: Mapped[float] = mapped_column(Float, default=1.0)
    is_reverse_scored: Mapped[bool] = mapped_column(Boolean, default=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class Response(Base):
    __tablename__ = "responses"
    __table_args__ = (UniqueConstraint("session_id", "question_id", name="uq_response_session_question"),)
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("assessment_sessions.id"), index=True)
    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("questions.id"))
    response_value: Mapped[int] = mapped_column(Integer)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class ScoreRange(Base):
    __tablename__ = "score_ranges"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    area_id: Mapped[str] = mapped_column(String(36), ForeignKey("areas.id"), index=True)
    min_score: Mapped[float] = mapped_column(Float)
    max_score: Mapped[float] = mapped_column(Float)
    level_name: Mapped[str] = mapped_column(String(64))
    level_code: Mapped[str] = mapped_column(String(64))
    color_hex: Mapped[str | None] = mapped_column(String(7), nullable=True)

class Score(Base):
    __tablename__ = "scores"
    __table_args__ = (UniqueConstraint("session_id", "area_id", name="uq_score_session_area"),)
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("assessment_sessions.id"), index=True)
    area_id: Mapped[str] = mapped_column(String(36), ForeignKey("areas.id"))
    score_range_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("score_ranges.id", ondelete="SET NULL"), nullable=True)
    value: Mapped[float] = mapped_column(Float)
    # Level snapshot, so later range edits do not rewrite past results.
    level_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    level_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color_hex: Mapped[str | None] = mapped_column(String(7), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
