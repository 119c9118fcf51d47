from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel

# Field names are camelCase on purpose: the Cliq bot reads them as-is.

class AuthStartResponse(BaseModel):
    success: bool = True
    authUrl: str
    message: str = "Redirect user to this URL to authenticate"

class AuthCallbackResponse(BaseModel):
    success: bool = True
    message: str
    userId: str
    expiresAt: Optional[datetime] = None

class AuthStatusResponse(BaseModel):
    success: bool
    authenticated: bool
    expired: bool = False
    expiresAt: Optional[datetime] = None
    adAccountId: Optional[str] = None
    needsRefresh: bool = False
    message: Optional[str] = None

class DataEnvelope(BaseModel):
    success: bool = True
    data: Any = None
    paging: Optional[Dict[str, Any]] = None

class LeadsEnvelope(DataEnvelope):
    failedForms: List[str] = []

class HealthResponse(BaseModel):
    success: bool = True
    message: str
    timestamp: datetime
