"""
Pydantic models for API request/response schemas.
"""

from typing import List, Dict, Any, Optional
from pydantic import BaseModel, Field
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Request Models
class PlanUpdateRequest(BaseModel):
    """Editable plan fields. Omitted fields keep their current value."""
    layout: Optional[str] = Field(None, description="Layout (2LDK-6LDK or -)")
    floors: Optional[str] = Field(None, description="Floors (平屋/2階建て/3階建て or -)")
    totalArea: Optional[float] = Field(None, ge=0, description="Building area in tsubo")
    direction: Optional[str] = Field(None, description="Approach direction or -")
    siteArea: Optional[float] = Field(None, ge=0, description="Site area in tsubo")
    features: Optional[List[str]] = Field(None, description="Feature tags")
    version: Optional[int] = Field(None, description="Version the client last read")


class FilenameParseRequest(BaseModel):
    """Batch filename parse request."""
    filenames: List[str] = Field(..., description="Filenames to parse")


class FilenameGenerateRequest(BaseModel):
    """Filename generation request."""
    totalArea: float = Field(0, ge=0, description="Building area in tsubo")
    layout: str = Field("-", description="Layout")
    floors: str = Field("-", description="Floors")
    direction: str = Field("-", description="Approach direction")
    siteArea: float = Field(0, ge=0, description="Site area in tsubo")
    features: List[str] = Field(default_factory=list, description="Feature tags")


class AnalysisDecodeRequest(BaseModel):
    """Raw reply from the plan analysis model."""
    reply: str = Field(..., description="Model reply text")


class AssistantRequest(BaseModel):
    """Chat request for the plan assistant."""
    message: str = Field(..., min_length=1, description="User message")
    conversationHistory: List[Dict[str, str]] = Field(default_factory=list, description="Earlier turns")


# Response Models
class DrawingInfo(BaseModel):
    id: str
    type: str
    filePath: str
    originalFilename: str
    uploadedAt: Optional[str] = None


class PhotoInfo(BaseModel):
    id: str
    filePath: str
    originalFilename: str
    uploadedAt: Optional[str] = None


class PlanInfo(BaseModel):
    """Plan record as returned by the API."""
    id: str = Field(..., description="Plan ID")
    companyId: str = Field(..., description="Owning company")
    title: str = Field(..., description="Generated title")
    layout: str
    floors: str
    totalArea: float
    direction: str
    siteArea: float
    features: List[str] = Field(default_factory=list)
    pdfPath: str
    thumbnailPath: Optional[str] = None
    originalFilename: str
    favorite: bool = False
    version: int = 1
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    drawings: List[DrawingInfo] = Field(default_factory=list)
    photos: List[PhotoInfo] = Field(default_factory=list)


class PlanResponse(BaseModel):
    success: bool = True
    plan: PlanInfo


class PlanListResponse(BaseModel):
    success: bool = True
    plans: List[PlanInfo] = Field(default_factory=list)
    count: int = Field(..., description="Number of plans returned")


class CountResponse(BaseModel):
    success: bool = True
    count: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ParseErrorInfo(BaseModel):
    kind: str
    message: str


class ParsedFilename(BaseModel):
    filename: str
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[ParseErrorInfo] = None


class FilenameParseResponse(BaseModel):
    results: List[ParsedFilename] = Field(default_factory=list)
    valid: int
    invalid: int


class FilenameGenerateResponse(BaseModel):
    filename: str
    title: str


class AnalysisResponse(BaseModel):
    success: bool = True
    analysis: Dict[str, Any]
    suggestedFilename: str


class AssistantResponse(BaseModel):
    success: bool = True
    message: str
    suggestedPlans: List[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(default_factory=_now, description="Check timestamp")
    components: Dict[str, str] = Field(default_factory=dict, description="Component status")
