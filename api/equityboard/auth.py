from typing import Optional
from fastapi import Header, HTTPException, Query, status
from itsdangerous import BadSignature
from pydantic import BaseModel
from sqlmodel import Session, select

from .config import ADMIN_ACCESS_TOKEN
from .errors import Forbidden, NotFound
from .models import Company, CompanyMember, MemberStatus
from .utils import read_token


class ActingPrincipal(BaseModel):
    user_id: Optional[int] = None
    is_admin: bool = False


def resolve_principal(
    x_access_token: Optional[str] = Header(default=None, alias="X-Access-Token"),
    token: Optional[str] = Query(default=None),
) -> ActingPrincipal:
    candidate = x_access_token or token
    if not candidate:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing access token")
    if ADMIN_ACCESS_TOKEN and candidate == ADMIN_ACCESS_TOKEN:
        return ActingPrincipal(is_admin=True)
    try:
        payload = read_token(candidate)
    except BadSignature:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token")
    user_id = payload.get("user_id") if isinstance(payload, dict) else None
    if not isinstance(user_id, int):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token")
    return ActingPrincipal(user_id=user_id)


def is_active_member(session: Session, company_id: int, user_id: Optional[int]) -> bool:
    if user_id is None:
        return False
    member = session.exec(
        select(CompanyMember).where(
            CompanyMember.company_id == company_id,
            CompanyMember.user_id == user_id,
            CompanyMember.status == MemberStatus.ACTIVE,
        )
    ).first()
    return member is not None


def load_visible_company(session: Session, principal: ActingPrincipal, company_id: int) -> Company:
    """Return the company if the principal is its owner, an active board member, or an admin.

    Anyone else gets NotFound so that existence is not leaked.
    """
    company = session.get(Company, company_id)
    if not company:
        raise NotFound("company", company_id)
    if principal.is_admin or company.owner_id == principal.user_id:
        return company
    if is_active_member(session, company_id, principal.user_id):
        return company
    raise NotFound("company", company_id)


def load_owned_company(session: Session, principal: ActingPrincipal, company_id: int) -> Company:
    company = load_visible_company(session, principal, company_id)
    if company.owner_id != principal.user_id:
        raise Forbidden("only the company owner may do this", {"company_id": company_id})
    return company
