"""Signature ledger state machine.

A request starts ``pending`` and moves exactly once, to ``signed`` or
``declined``. Identity is checked before state, so a caller can tell
"not your request" (Forbidden) from "already resolved" (Conflict).
A rejected call leaves the request untouched.
"""

from datetime import datetime
from typing import Optional

from .auth import ActingPrincipal
from .errors import Conflict, Forbidden, InvalidInput
from .models import SignatureRequest, SignatureStatus, utcnow

DEFAULT_DECLINE_REASON = "No reason provided"
REVOKED_REASON = "Board membership revoked"


def _check_transition(request: SignatureRequest, principal: ActingPrincipal):
    if principal.user_id is None or request.signer_id != principal.user_id:
        raise Forbidden("signature request is assigned to another signer", {"request_id": request.id})
    if request.status != SignatureStatus.PENDING:
        raise Conflict(
            "document has already been signed or declined",
            {"request_id": request.id, "status": request.status},
        )


def sign(request: SignatureRequest, principal: ActingPrincipal, signature_data: str, at: Optional[datetime] = None):
    _check_transition(request, principal)
    if not signature_data or not signature_data.strip():
        raise InvalidInput("signature image is required", {"request_id": request.id})
    request.status = SignatureStatus.SIGNED
    request.signature_data = signature_data
    request.signed_at = at or utcnow()
    return request


def decline(request: SignatureRequest, principal: ActingPrincipal, reason: Optional[str] = None, at: Optional[datetime] = None):
    _check_transition(request, principal)
    return _mark_declined(request, reason, at)


def revoke(request: SignatureRequest, reason: str = REVOKED_REASON, at: Optional[datetime] = None):
    """System-initiated decline, used when the signer loses board membership."""
    if request.status != SignatureStatus.PENDING:
        raise Conflict(
            "document has already been signed or declined",
            {"request_id": request.id, "status": request.status},
        )
    return _mark_declined(request, reason, at)


def _mark_declined(request: SignatureRequest, reason: Optional[str], at: Optional[datetime]):
    request.status = SignatureStatus.DECLINED
    request.decline_reason = (reason or "").strip() or DEFAULT_DECLINE_REASON
    request.declined_at = at or utcnow()
    return request


def all_signed(requests) -> bool:
    """True only when there is at least one request and every one is signed."""
    requests = list(requests)
    return bool(requests) and all(r.status == SignatureStatus.SIGNED for r in requests)
