from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Dict, Any

from schemas.sequence import SequenceWarning

class Prospect(BaseModel):
    name: str
    email: EmailStr
    company: Optional[str] = None
    position: Optional[str] = None
    linkedin: Optional[str] = None
    phone: Optional[str] = None

class CampaignDraft(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    prospects: List[Prospect] = Field(default_factory=list)
    sequence: List[Dict[str, Any]] = Field(default_factory=list)

class CampaignPayload(BaseModel):
    """Body sent to the campaign service when creating a campaign"""
    name: str
    description: Optional[str] = None
    prospects: List[Prospect]
    sequence: List[Dict[str, Any]]

class PreparedCampaign(BaseModel):
    payload: CampaignPayload
    warnings: List[SequenceWarning] = Field(default_factory=list)
