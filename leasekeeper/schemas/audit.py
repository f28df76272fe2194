import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel


class AuditEntryOut(BaseModel):
    id: uuid.UUID
    actor_id: Optional[uuid.UUID] = None
    actor_role: Optional[str] = None
    type: str
    action: str
    entity_type: str
    entity_id: Optional[uuid.UUID] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime
    verified: bool  # integrity hash matches the stored entry
