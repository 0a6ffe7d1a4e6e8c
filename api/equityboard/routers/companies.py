from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from ..auth import ActingPrincipal, resolve_principal, load_owned_company
from ..db import get_session
from ..errors import Conflict, Forbidden, InvalidInput, NotFound
from ..logger import get_logger
from ..models import Company, CompanyMember, MemberStatus, Profile, utcnow
from ..schemas import CompanyCreate, BoardMemberAdd
from .. import workflow

logger = get_logger(__name__)

router = APIRouter()

def _member(session: Session, company_id: int, user_id: int):
    return session.exec(
        select(CompanyMember).where(CompanyMember.company_id == company_id, CompanyMember.user_id == user_id)
    ).first()

@router.post("", status_code=201)
def create_company(
    payload: CompanyCreate,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    if principal.user_id is None:
        raise Forbidden("companies are owned by a user")
    company = Company(
        name=payload.name.strip(),
        description=payload.description,
        owner_id=principal.user_id,
        authorized_shares=payload.authorized_shares,
        share_calculation_method=payload.share_calculation_method,
    )
    session.add(company)
    session.flush()
    session.add(CompanyMember(
        company_id=company.id,
        user_id=principal.user_id,
        role="owner",
        status=MemberStatus.ACTIVE,
        invited_by=principal.user_id,
        accepted_at=utcnow(),
    ))
    session.commit()
    session.refresh(company)
    logger.info("company created", company_id=company.id, owner_id=company.owner_id)
    return company

@router.post("/{company_id}/members", status_code=201)
def add_board_member(
    company_id: int,
    payload: BoardMemberAdd,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    load_owned_company(session, principal, company_id)
    if not session.get(Profile, payload.user_id):
        raise InvalidInput("user does not exist", {"user_id": payload.user_id})
    member = _member(session, company_id, payload.user_id)
    if member and member.status == MemberStatus.ACTIVE:
        raise Conflict("user is already a member", {"user_id": payload.user_id})
    if not member:
        member = CompanyMember(company_id=company_id, user_id=payload.user_id)
    member.role = member.role or "board_member"
    member.status = MemberStatus.ACTIVE
    member.invited_by = principal.user_id
    member.accepted_at = utcnow()
    session.add(member)
    session.commit()
    session.refresh(member)
    logger.info("board member added", company_id=company_id, user_id=payload.user_id)
    return member

@router.delete("/{company_id}/members/{user_id}")
def remove_board_member(
    company_id: int,
    user_id: int,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    company = load_owned_company(session, principal, company_id)
    if user_id == company.owner_id:
        raise InvalidInput("the owner cannot be removed")
    member = _member(session, company_id, user_id)
    if not member or member.status == MemberStatus.REMOVED:
        raise NotFound("member", user_id)
    member.status = MemberStatus.REMOVED
    session.add(member)
    session.commit()
    logger.info("board member removed", company_id=company_id, user_id=user_id)
    revoked = workflow.revoke_member_requests(session, principal, company_id, user_id)
    return {"ok": True, "revoked_requests": revoked}
