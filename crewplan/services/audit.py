"""
Audit logging service.
Append-only audit log with integrity hashing.
"""
import hashlib
import hmac
import json
from datetime import datetime, date, timezone
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from ..models.models import AuditLog
from ..config import settings


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id: str,
    action: str,
    organization_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    actor_role: Optional[str] = None,
    source: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None
) -> AuditLog:
    """
    Stage an append-only audit log entry in the caller's transaction.

    The entry is added to the session but not committed, so it lands together
    with the change it describes (or not at all).

    Args:
        db: Database session
        entity_type: Type of entity (schedule_item|crew|membership)
        entity_id: Entity ID
        action: Action performed (CREATE|UPDATE|DELETE|APPROVE|REJECT|ARCHIVE|RESTORE)
        organization_id: Owning organization
        actor_id: User ID who performed the action
        actor_role: Role of the actor (admin|operations|user|system)
        source: Source of the action (api|ledger|system)
        changes_json: Before/after diff
        context: Additional context (crew_id, date, reason...)
        integrity_secret: Secret for integrity hash (defaults to JWT_SECRET)

    Returns:
        The pending AuditLog object
    """
    timestamp_utc = datetime.utcnow().replace(tzinfo=None)

    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        organization_id=organization_id,
        actor_id=actor_id,
        actor_role=actor_role,
        source=source or "system",
        changes_json=_jsonable(changes_json),
        timestamp_utc=timestamp_utc,
        context=_jsonable(context),
    )
    audit_log.integrity_hash = _integrity_hash(audit_log, integrity_secret)

    db.add(audit_log)
    return audit_log


def _integrity_hash(log: AuditLog, integrity_secret: Optional[str] = None) -> Optional[str]:
    """SHA256 over the stored (JSON-safe) values of the entry plus the secret."""
    if integrity_secret is None:
        integrity_secret = settings.jwt_secret
    if not integrity_secret:
        return None

    timestamp_utc = log.timestamp_utc
    if timestamp_utc is not None and timestamp_utc.tzinfo is not None:
        timestamp_utc = timestamp_utc.astimezone(timezone.utc).replace(tzinfo=None)

    canonical_data = {
        "entity_type": log.entity_type,
        "entity_id": str(log.entity_id),
        "action": log.action,
        "organization_id": log.organization_id,
        "actor_id": str(log.actor_id) if log.actor_id else None,
        "actor_role": log.actor_role,
        "source": log.source,
        "timestamp_utc": timestamp_utc.isoformat() if timestamp_utc else None,
        "changes": log.changes_json,
        "context": log.context,
    }

    # Remove None values and sort keys for consistency
    canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
    canonical_json = json.dumps(canonical_data, sort_keys=True)

    hash_input = f"{canonical_json}:{integrity_secret}"
    return hashlib.sha256(hash_input.encode()).hexdigest()


def verify_audit_log(log: AuditLog, integrity_secret: Optional[str] = None) -> bool:
    """True when the stored hash still matches the entry's content."""
    expected = _integrity_hash(log, integrity_secret)
    if expected is None or not log.integrity_hash:
        return False
    return hmac.compare_digest(expected, log.integrity_hash)


def get_audit_logs(
    db: Session,
    organization_id: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0
) -> list:
    """Newest first, always scoped to one organization."""
    query = db.query(AuditLog).filter(AuditLog.organization_id == organization_id)

    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)

    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)

    query = query.order_by(AuditLog.timestamp_utc.desc())
    query = query.limit(limit).offset(offset)

    return query.all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """
    Compute a diff between two dictionaries.

    Returns:
        Dict with before/after values for changed fields
    """
    diff = {}
    all_keys = set(before.keys()) | set(after.keys())

    for key in all_keys:
        before_val = before.get(key)
        after_val = after.get(key)

        if before_val != after_val:
            diff[key] = {
                "before": before_val,
                "after": after_val,
            }

    return diff


def _jsonable(value: Any) -> Any:
    # JSON columns cannot hold date/datetime values
    if value is None:
        return None
    return json.loads(json.dumps(value, default=lambda v: v.isoformat() if isinstance(v, (date, datetime)) else str(v)))
