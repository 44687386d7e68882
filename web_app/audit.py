"""
Audit logging for the browser magic-link flow. Security-relevant events only;
no codes, tokens, verifiers or email addresses.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from web_app.database import get_db
from web_app.models import AuditLog

EVENT_MAGIC_LINK_REQUESTED = "magic_link_requested"
EVENT_CODE_EXCHANGED = "code_exchanged"
EVENT_EXCHANGE_FAILED = "exchange_failed"
EVENT_TOKEN_VERIFIED = "token_verified"
EVENT_SESSION_SYNCED = "session_synced"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def get_client_ip(request: Request | None) -> str | None:
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    db: Session,
    event_type: str,
    *,
    state: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
    detail: str | None = None,
) -> None:
    """Append one audit record. Only a 6-char prefix of state is kept."""
    db.add(
        AuditLog(
            event_type=event_type,
            state_prefix=state[:6] if state else None,
            ip=ip,
            outcome=outcome,
            detail=detail,
        )
    )
    db.commit()


router = APIRouter(tags=["audit"])


@router.get("/audit")
def list_audit_logs(
    limit: int = 100,
    event_type: str | None = None,
    outcome: str | None = None,
    db: Session = Depends(get_db),
):
    """Recent audit events, most recent first."""
    q = db.query(AuditLog).order_by(AuditLog.id.desc())
    if event_type:
        q = q.filter(AuditLog.event_type == event_type)
    if outcome:
        q = q.filter(AuditLog.outcome == outcome)
    rows = q.limit(min(max(1, limit), 500)).all()
    return [
        {
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "event_type": r.event_type,
            "state_prefix": r.state_prefix,
            "ip": r.ip,
            "outcome": r.outcome,
            "detail": r.detail,
        }
        for r in rows
    ]
