import uuid

from pydantic import BaseModel

from ..models.models import UnitStatus


class OccupancyProjection(BaseModel):
    unit_id: uuid.UUID
    status: UnitStatus
    changed: bool


class OccupancySyncResult(BaseModel):
    occupied_count: int
    vacant_count: int
