"""
Audit events.

Persisting and displaying the audit trail belongs to another service. This
module builds the structured event and hands it to a sink. The default sink
writes one JSON line to the ``resilience.audit`` logger. A failing sink never
fails the operation that produced the event.
"""
import json
import logging
from typing import Any, Callable, Dict, Optional
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("resilience.audit")

class AuditEvent(BaseModel):
    event_type: str
    event_category: str  # authentication | data_access | configuration | export
    actor_type: str  # admin | system | assessment_taker
    actor_id: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    description: str
    data: Dict[str, Any] = Field(default_factory=dict)

AuditSink = Callable[[AuditEvent], None]

def log_sink(event: AuditEvent) -> None:
    audit_logger.info(json.dumps(event.model_dump(), default=str, sort_keys=True))

_sink: AuditSink = log_sink

def set_audit_sink(sink: Optional[AuditSink]) -> None:
    global _sink
    _sink = sink or log_sink

def record(event: AuditEvent) -> None:
    try:
        _sink(event)
    except Exception:
        logger.exception("Audit sink failed for %s on %s %s", event.event_type, event.target_type, event.target_id)

# Pre-defined events

def codes_generated(admin_id: str, cohort_id: str, count: int) -> None:
    record(AuditEvent(
        event_type="codes_generated", event_category="configuration",
        actor_type="admin", actor_id=admin_id, target_type="cohort", target_id=cohort_id,
        description=f"Generated {count} assessment codes", data={"count": count},
    ))

def assessment_started(code_id: str, session_id: str, cohort_id: str, attempt_number: int) -> None:
    record(AuditEvent(
        event_type="assessment_started", event_category="data_access",
        actor_type="assessment_taker", actor_id=code_id, target_type="assessment_session", target_id=session_id,
        description="Assessment started", data={"cohort_id": cohort_id, "attempt_number": attempt_number},
    ))

def assessment_resumed(code_id: str, session_id: str, cohort_id: str) -> None:
    record(AuditEvent(
        event_type="assessment_resumed", event_category="data_access",
        actor_type="assessment_taker", actor_id=code_id, target_type="assessment_session", target_id=session_id,
        description="Assessment resumed", data={"cohort_id": cohort_id},
    ))

def assessment_completed(code_id: str, session_id: str, cohort_id: str) -> None:
    record(AuditEvent(
        event_type="assessment_completed", event_category="data_access",
        actor_type="assessment_taker", actor_id=code_id, target_type="assessment_session", target_id=session_id,
        description="Assessment completed", data={"cohort_id": cohort_id},
    ))

def results_viewed(code_id: str, session_id: str) -> None:
    record(AuditEvent(
        event_type="results_viewed", event_category="data_access",
        actor_type="assessment_taker", actor_id=code_id, target_type="assessment_session", target_id=session_id,
        description="Results viewed",
    ))

def score_ranges_updated(admin_id: str, area_id: str, area_name: str, range_count: int) -> None:
    record(AuditEvent(
        event_type="score_ranges_updated", event_category="configuration",
        actor_type="admin", actor_id=admin_id, target_type="area", target_id=area_id,
        description=f'Updated score ranges for area "{area_name}"',
        data={"area_name": area_name, "range_count": range_count},
    ))

def sub_areas_reordered(admin_id: str, area_id: str, sub_area_ids: list) -> None:
    record(AuditEvent(
        event_type="sub_areas_reordered", event_category="configuration",
        actor_type="admin", actor_id=admin_id, target_type="area", target_id=area_id,
        description="Reordered sub-areas", data={"sub_area_ids": list(sub_area_ids)},
    ))
