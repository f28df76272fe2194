"""
Audit logging service.
Append-only audit log with integrity hashing.

Entries are written inside the caller's transaction: `append_audit_entry`
flushes but never commits, so a failed audit write rolls back the mutation
it describes.
"""
import hashlib
import json
from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session

from ..models.models import AuditLog
from ..config import settings


# Activity types recorded by the engine
LEASE_CREATED = "LEASE_CREATED"
LEASE_TERMINATED = "LEASE_TERMINATED"
PROPERTY_UPDATED = "PROPERTY_UPDATED"
PROPERTY_DELETED = "PROPERTY_DELETED"
PAYMENT_MADE = "PAYMENT_MADE"
PAYMENT_FAILED = "PAYMENT_FAILED"
TICKET_UPDATED = "TICKET_UPDATED"
OCCUPANCY_SYNCED = "OCCUPANCY_SYNCED"


def compute_integrity_hash(
    actor_id: Optional[str],
    actor_role: Optional[str],
    type: str,
    action: str,
    entity_type: str,
    entity_id: Optional[str],
    metadata: Optional[Dict[str, Any]],
    created_at: datetime,
    integrity_secret: Optional[str] = None,
) -> Optional[str]:
    """SHA256 over the canonical JSON form of an entry, salted with the secret."""
    if integrity_secret is None:
        integrity_secret = settings.audit_integrity_secret or settings.jwt_secret
    if not integrity_secret:
        return None

    canonical_data = {
        "actor_id": str(actor_id) if actor_id else None,
        "actor_role": actor_role,
        "type": type,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id) if entity_id else None,
        "metadata": metadata,
        "created_at": created_at.isoformat(),
    }
    # Remove None values and sort keys for consistency
    canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
    canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)

    hash_input = f"{canonical_json}:{integrity_secret}"
    return hashlib.sha256(hash_input.encode()).hexdigest()


def append_audit_entry(
    db: Session,
    actor,
    type: str,
    action: str,
    entity_type: str,
    entity_id=None,
    metadata: Optional[Dict[str, Any]] = None,
    integrity_secret: Optional[str] = None,
) -> AuditLog:
    """
    Append an audit entry to the current unit of work.

    Args:
        db: Database session (the caller owns the transaction)
        actor: Acting principal (anything with `id` and `role`), or None for system jobs
        type: Activity type (LEASE_CREATED|LEASE_TERMINATED|PROPERTY_UPDATED|...)
        action: Human readable description
        entity_type: lease|unit|payment|ticket
        entity_id: Primary entity ID
        metadata: Entity ids involved and transition details
        integrity_secret: Secret for integrity hash (defaults to AUDIT_INTEGRITY_SECRET, then JWT_SECRET)

    Returns:
        The pending AuditLog row
    """
    created_at = datetime.utcnow().replace(tzinfo=None)
    actor_id = getattr(actor, "id", None)
    actor_role = getattr(actor, "role", None) or "SYSTEM"
    if hasattr(actor_role, "value"):
        actor_role = actor_role.value
    metadata = json.loads(json.dumps(metadata, default=str)) if metadata is not None else None

    entry = AuditLog(
        actor_id=actor_id,
        actor_role=actor_role,
        type=type,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=metadata,
        created_at=created_at,
        integrity_hash=compute_integrity_hash(
            actor_id, actor_role, type, action, entity_type, entity_id,
            metadata, created_at, integrity_secret,
        ),
    )
    db.add(entry)
    db.flush()
    return entry


def verify_integrity(entry: AuditLog, integrity_secret: Optional[str] = None) -> bool:
    expected = compute_integrity_hash(
        entry.actor_id,
        entry.actor_role,
        entry.type,
        entry.action,
        entry.entity_type,
        entry.entity_id,
        entry.metadata_json,
        entry.created_at.replace(tzinfo=None),
        integrity_secret,
    )
    return expected is not None and expected == entry.integrity_hash


def list_entries(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id=None,
    type: Optional[str] = None,
    limit: int = 100,
    offset: int = 0
) -> List[AuditLog]:
    query = db.query(AuditLog)

    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if type:
        query = query.filter(AuditLog.type == type)

    query = query.order_by(AuditLog.created_at.desc())
    return query.limit(limit).offset(offset).all()


def compute_diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Fields whose value differs between two snapshots, as {field: {"before": .., "after": ..}}."""
    return {
        key: {"before": before.get(key), "after": after.get(key)}
        for key in sorted(set(before) | set(after))
        if before.get(key) != after.get(key)
    }
