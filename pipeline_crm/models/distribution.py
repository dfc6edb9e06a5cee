"""
Distribution des leads (config singleton + roster vendedores)
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class DistributionMode(str, Enum):
    ROUND_ROBIN = "round_robin"


class DistributionConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    distribution_mode: Optional[DistributionMode] = None


class RosterMemberCreate(BaseModel):
    vendedor_id: str
    priority: int = Field(default=0, ge=0)


class RosterMemberUpdate(BaseModel):
    active: Optional[bool] = None
    priority: Optional[int] = Field(default=None, ge=0)


class BatchAssign(BaseModel):
    lead_ids: List[str]
    vendedor_id: str
