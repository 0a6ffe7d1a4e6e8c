from dataclasses import asdict
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends
from sqlmodel import Session
from ..auth import ActingPrincipal, resolve_principal
from ..db import get_session
from ..schemas import ConvertPayload
from .. import captable

router = APIRouter()

@router.get("/companies/{company_id}/cap-table")
def cap_table_snapshot(
    company_id: int,
    as_of: Optional[date] = None,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    return asdict(captable.load_snapshot(session, principal, company_id, as_of))

@router.get("/companies/{company_id}/equity-grants")
def equity_grants(
    company_id: int,
    as_of: Optional[date] = None,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    return captable.grant_vesting(session, principal, company_id, as_of)

@router.post("/convertibles/{instrument_id}/convert")
def convert_instrument(
    instrument_id: int,
    payload: ConvertPayload,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    return captable.convert_instrument(
        session,
        principal,
        instrument_id,
        price_per_share=payload.price_per_share,
        round_price_per_share=payload.round_price_per_share,
        equity_type=payload.equity_type,
        conversion_date=payload.conversion_date,
    )
