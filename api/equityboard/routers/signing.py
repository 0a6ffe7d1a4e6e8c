from fastapi import APIRouter, Depends
from sqlmodel import Session
from ..auth import ActingPrincipal, resolve_principal
from ..db import get_session
from ..schemas import SignPayload, DeclinePayload
from .. import workflow

router = APIRouter()

@router.get("/pending")
def pending_signatures(
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    return workflow.list_pending_requests(session, principal)

@router.post("/{request_id}")
def sign(
    request_id: int,
    payload: SignPayload,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    return workflow.sign_document(session, principal, request_id, payload.signature_data)

@router.post("/{request_id}/decline")
def decline(
    request_id: int,
    payload: DeclinePayload,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    return workflow.decline_document(session, principal, request_id, payload.reason)
