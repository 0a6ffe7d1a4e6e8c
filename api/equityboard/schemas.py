
from datetime import date
from pydantic import BaseModel, Field
from typing import List, Literal, Optional

class CompanyCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    authorized_shares: Optional[int] = None
    share_calculation_method: Literal["fully_diluted", "issued_outstanding"] = "fully_diluted"

class BoardMemberAdd(BaseModel):
    user_id: int

class SignPayload(BaseModel):
    signature_data: str  # data:image/png;base64,...

class DeclinePayload(BaseModel):
    reason: Optional[str] = None

class ConvertPayload(BaseModel):
    price_per_share: Optional[float] = None
    round_price_per_share: Optional[float] = None
    equity_type: str = "preferred_stock"
    conversion_date: Optional[date] = None

class RepairOutcomeOut(BaseModel):
    document_id: int
    title: str
    status: str
    reason: Optional[str] = None

class RepairReportOut(BaseModel):
    success: bool = True
    message: str
    count: int
    error_count: int
    results: List[RepairOutcomeOut]
