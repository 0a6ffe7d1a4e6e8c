
from typing import Optional
from datetime import date, datetime, timezone
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field as ORMField


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus:
    PENDING = "pending"
    PARTIALLY_SIGNED = "partially_signed"
    FULLY_SIGNED = "fully_signed"
    CANCELLED = "cancelled"


class SignatureStatus:
    PENDING = "pending"
    SIGNED = "signed"
    DECLINED = "declined"


class MemberStatus:
    PENDING = "pending"
    ACTIVE = "active"
    REMOVED = "removed"


class InstrumentStatus:
    OUTSTANDING = "outstanding"
    CONVERTED = "converted"
    REPAID = "repaid"
    EXPIRED = "expired"


class ShareCalculationMethod:
    FULLY_DILUTED = "fully_diluted"
    ISSUED_OUTSTANDING = "issued_outstanding"


class Profile(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    email: str
    full_name: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow)


class Company(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    owner_id: int = ORMField(index=True)
    authorized_shares: Optional[int] = None
    share_calculation_method: str = ShareCalculationMethod.FULLY_DILUTED
    created_at: datetime = ORMField(default_factory=utcnow)


class CompanyMember(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    company_id: int = ORMField(index=True)
    user_id: int = ORMField(index=True)
    role: str = "board_member"  # owner|board_member
    status: str = MemberStatus.ACTIVE
    invited_by: Optional[int] = None
    invited_at: datetime = ORMField(default_factory=utcnow)
    accepted_at: Optional[datetime] = None


class Document(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    company_id: int = ORMField(index=True)
    title: str
    description: Optional[str] = None
    file_path: str
    signed_file_path: Optional[str] = None
    file_name: str
    file_size: int = 0
    file_type: str = "application/pdf"
    uploaded_by: int
    requires_all_signatures: bool = False
    status: str = DocumentStatus.PENDING
    created_at: datetime = ORMField(default_factory=utcnow)
    updated_at: datetime = ORMField(default_factory=utcnow)


class SignatureRequest(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_id: int = ORMField(index=True)
    company_id: int
    signer_id: int = ORMField(index=True)
    status: str = SignatureStatus.PENDING
    signature_data: Optional[str] = None  # data:image/png;base64,...
    signed_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    decline_reason: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow)


class AuditLogEntry(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_id: int = ORMField(index=True)
    user_id: Optional[int] = None  # None for system actions
    action: str  # uploaded|signed|declined|cancelled|signed_pdf_generated|revoked
    details: dict = ORMField(default_factory=dict, sa_column=Column(JSON))
    at: datetime = ORMField(default_factory=utcnow)


class CapTableEntry(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    company_id: int = ORMField(index=True)
    holder_name: str
    holder_email: Optional[str] = None
    holder_type: str = "other"  # founder|employee|investor|advisor|other
    equity_type: str = "common_stock"  # common_stock|preferred_stock|safe|convertible_note|option
    shares: float = 0.0
    price_per_share: Optional[float] = None
    total_value: Optional[float] = None
    issue_date: Optional[date] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime = ORMField(default_factory=utcnow)


class EquityGrant(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    company_id: int = ORMField(index=True)
    recipient_name: str
    recipient_email: Optional[str] = None
    grant_date: date
    total_shares: int
    vested_shares: int = 0  # cache used only when no vesting start date exists
    exercised_shares: int = 0
    cancelled_shares: int = 0
    vesting_start_date: Optional[date] = None
    vesting_duration_months: int = 48
    cliff_months: int = 12
    exercise_price: Optional[float] = None
    expiration_date: Optional[date] = None
    grant_type: str = "ISO"  # ISO|NSO|RSU|RSA
    status: str = "active"


class ConvertibleInstrument(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    company_id: int = ORMField(index=True)
    investor_name: str
    investor_email: Optional[str] = None
    instrument_type: str = "SAFE"  # SAFE|convertible_note
    principal_amount: float
    discount_rate: Optional[float] = None  # percent, 20 == 20%
    valuation_cap: Optional[float] = None
    interest_rate: Optional[float] = None
    issue_date: date
    maturity_date: Optional[date] = None
    conversion_trigger: Optional[str] = None
    status: str = InstrumentStatus.OUTSTANDING
    updated_at: datetime = ORMField(default_factory=utcnow)


class EquityTransaction(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    company_id: int = ORMField(index=True)
    transaction_type: str  # issuance|transfer|repurchase|exercise|cancellation|conversion
    transaction_date: date
    from_holder: Optional[str] = None
    to_holder: str
    equity_type: str
    shares: float
    price_per_share: Optional[float] = None
    total_amount: Optional[float] = None
    related_grant_id: Optional[int] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime = ORMField(default_factory=utcnow)


class FundraisingRound(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    company_id: int = ORMField(index=True)
    round_name: str
    round_type: str = "seed"
    close_date: date
    valuation_pre_money: Optional[float] = None
    valuation_post_money: Optional[float] = None
    amount_raised: float = 0.0
    shares_issued: Optional[float] = None
    price_per_share: Optional[float] = None
    lead_investor: Optional[str] = None


class OptionPool(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    company_id: int = ORMField(index=True)
    pool_name: str
    total_shares: int
    granted_shares: int = 0
    available_shares: int = 0
    created_date: Optional[date] = None
