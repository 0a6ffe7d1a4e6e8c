"""Cap table aggregation and convertible instrument conversion."""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from sqlmodel import Session, select

from . import equity
from .auth import ActingPrincipal, load_owned_company, load_visible_company
from .errors import Conflict, InvalidInput, NotFound
from .logger import get_logger
from .models import (
    CapTableEntry,
    ConvertibleInstrument,
    EquityGrant,
    EquityTransaction,
    FundraisingRound,
    InstrumentStatus,
    OptionPool,
    utcnow,
)

logger = get_logger(__name__)

CONVERTIBLE_EQUITY_TYPES = ("common_stock", "preferred_stock")


@dataclass
class HolderOwnership:
    holder_name: str
    holder_type: str
    equity_type: str
    shares: float
    percentage: float


@dataclass
class CapTableSnapshot:
    method: str
    as_of: date
    issued_shares: float
    total_options_granted: int
    vested_options: int
    exercised_options: int
    fully_diluted_shares: float
    denominator: float
    option_pool_total: int
    option_pool_granted: int
    option_pool_available: int
    outstanding_convertible_principal: float
    ownership_by_type: Dict[str, dict] = field(default_factory=dict)
    holders: List[HolderOwnership] = field(default_factory=list)
    latest_round: Optional[dict] = None


def build_snapshot(entries, grants, instruments, pools, rounds, method: str, as_of: date) -> CapTableSnapshot:
    entries, grants, pools = list(entries), list(grants), list(pools)

    issued = equity.issued_shares(entries)
    fully_diluted = equity.fully_diluted_shares(issued, grants, pools)
    # one denominator for the whole report
    denominator = equity.ownership_denominator(method, issued, fully_diluted)

    by_type: Dict[str, dict] = {}
    holders = []
    for entry in entries:
        if entry.equity_type == "option":
            continue
        shares = float(entry.shares)
        bucket = by_type.setdefault(entry.holder_type, {"shares": 0.0, "percentage": 0.0})
        bucket["shares"] += shares
        holders.append(
            HolderOwnership(
                holder_name=entry.holder_name,
                holder_type=entry.holder_type,
                equity_type=entry.equity_type,
                shares=shares,
                percentage=equity.ownership_percentage(shares, denominator),
            )
        )
    for bucket in by_type.values():
        bucket["percentage"] = equity.ownership_percentage(bucket["shares"], denominator)
    holders.sort(key=lambda h: h.shares, reverse=True)

    latest = max(rounds, key=lambda r: r.close_date, default=None)

    return CapTableSnapshot(
        method=method,
        as_of=as_of,
        issued_shares=issued,
        total_options_granted=sum(g.total_shares for g in grants),
        vested_options=sum(equity.vested_shares(g, as_of) for g in grants),
        exercised_options=sum(g.exercised_shares or 0 for g in grants),
        fully_diluted_shares=fully_diluted,
        denominator=denominator,
        option_pool_total=sum(p.total_shares for p in pools),
        option_pool_granted=sum(p.granted_shares or 0 for p in pools),
        option_pool_available=sum(p.available_shares or 0 for p in pools),
        outstanding_convertible_principal=sum(
            float(i.principal_amount) for i in instruments if i.status == InstrumentStatus.OUTSTANDING
        ),
        ownership_by_type=by_type,
        holders=holders,
        latest_round=latest.model_dump() if latest else None,
    )


def _company_rows(session: Session, model, company_id: int):
    return session.exec(select(model).where(model.company_id == company_id)).all()


def load_snapshot(session: Session, principal: ActingPrincipal, company_id: int, as_of: Optional[date] = None) -> CapTableSnapshot:
    company = load_visible_company(session, principal, company_id)
    return build_snapshot(
        _company_rows(session, CapTableEntry, company_id),
        _company_rows(session, EquityGrant, company_id),
        _company_rows(session, ConvertibleInstrument, company_id),
        _company_rows(session, OptionPool, company_id),
        _company_rows(session, FundraisingRound, company_id),
        company.share_calculation_method,
        as_of or date.today(),
    )


def grant_vesting(session: Session, principal: ActingPrincipal, company_id: int, as_of: Optional[date] = None) -> List[dict]:
    load_visible_company(session, principal, company_id)
    as_of = as_of or date.today()
    results = []
    for grant in _company_rows(session, EquityGrant, company_id):
        vested = equity.vested_shares(grant, as_of)
        results.append(
            {
                "id": grant.id,
                "recipient_name": grant.recipient_name,
                "grant_type": grant.grant_type,
                "total_shares": grant.total_shares,
                "vested_shares": vested,
                "unvested_shares": grant.total_shares - vested,
                "exercised_shares": grant.exercised_shares,
                "cliff_date": equity.add_months(grant.vesting_start_date, grant.cliff_months)
                if grant.vesting_start_date else None,
            }
        )
    return results


def convert_instrument(
    session: Session,
    principal: ActingPrincipal,
    instrument_id: int,
    price_per_share: Optional[float] = None,
    round_price_per_share: Optional[float] = None,
    equity_type: str = "preferred_stock",
    conversion_date: Optional[date] = None,
) -> dict:
    """Convert an outstanding SAFE or note into shares, at most once.

    With only ``round_price_per_share`` the price is derived from the
    instrument's discount and cap against the current fully diluted count.
    """
    instrument = session.get(ConvertibleInstrument, instrument_id)
    if not instrument:
        raise NotFound("convertible instrument", instrument_id)
    try:
        load_owned_company(session, principal, instrument.company_id)
    except NotFound:
        raise NotFound("convertible instrument", instrument_id)
    if instrument.status != InstrumentStatus.OUTSTANDING:
        raise Conflict(
            "instrument is not outstanding",
            {"instrument_id": instrument_id, "status": instrument.status},
        )
    if equity_type not in CONVERTIBLE_EQUITY_TYPES:
        raise InvalidInput("equity type must be common_stock or preferred_stock", {"equity_type": equity_type})

    if price_per_share is None:
        if round_price_per_share is None:
            raise InvalidInput("a conversion price or round price is required")
        company_id = instrument.company_id
        issued = equity.issued_shares(_company_rows(session, CapTableEntry, company_id))
        capitalization = equity.fully_diluted_shares(
            issued,
            _company_rows(session, EquityGrant, company_id),
            _company_rows(session, OptionPool, company_id),
        )
        price_per_share = equity.conversion_price(
            round_price_per_share,
            discount_rate=instrument.discount_rate,
            valuation_cap=instrument.valuation_cap,
            capitalization=capitalization,
        )

    shares = equity.conversion_shares(float(instrument.principal_amount), price_per_share)
    when = conversion_date or date.today()

    entry = CapTableEntry(
        company_id=instrument.company_id,
        holder_name=instrument.investor_name,
        holder_email=instrument.investor_email,
        holder_type="investor",
        equity_type=equity_type,
        shares=shares,
        price_per_share=price_per_share,
        total_value=float(instrument.principal_amount),
        issue_date=when,
        notes=f"Converted from {instrument.instrument_type} #{instrument.id}",
        created_by=principal.user_id,
    )
    txn = EquityTransaction(
        company_id=instrument.company_id,
        transaction_type="conversion",
        transaction_date=when,
        from_holder=instrument.investor_name,
        to_holder=instrument.investor_name,
        equity_type=equity_type,
        shares=shares,
        price_per_share=price_per_share,
        total_amount=float(instrument.principal_amount),
        notes=f"{instrument.instrument_type} conversion",
        created_by=principal.user_id,
    )
    instrument.status = InstrumentStatus.CONVERTED
    instrument.updated_at = utcnow()
    session.add(entry)
    session.add(txn)
    session.add(instrument)
    session.commit()
    session.refresh(entry)
    session.refresh(txn)

    logger.info("instrument converted", instrument_id=instrument_id, shares=shares, price_per_share=price_per_share)
    return {
        "instrument_id": instrument_id,
        "status": instrument.status,
        "shares": shares,
        "price_per_share": price_per_share,
        "cap_table_entry_id": entry.id,
        "transaction_id": txn.id,
    }
