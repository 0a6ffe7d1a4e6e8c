"""Document workflow: upload, sign/decline, completion, signed-artifact generation.

The authoritative state change of each operation (a request transition plus
the parent document's status) is committed first. Audit entries and signed
PDF generation run afterwards as post-commit hooks; a failing hook is logged
and never turns a recorded signature into an error for the signer.
"""

import posixpath
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select, delete

from . import compositor, ledger, storage
from .auth import ActingPrincipal, is_active_member, load_owned_company, load_visible_company
from .config import SIGNED_URL_TTL_SECONDS
from .errors import ArtifactSkipped, Conflict, DependencyError, InvalidInput, NotFound
from .logger import get_logger
from .models import (
    AuditLogEntry,
    Company,
    Document,
    DocumentStatus,
    Profile,
    SignatureRequest,
    SignatureStatus,
    utcnow,
)
from .utils import safe_filename, sha256_bytes

logger = get_logger(__name__)

SIGNED_SUFFIX = "-signed"


# ---------- helpers ----------

def signed_file_path_for(path: str) -> str:
    """``a/b/file.pdf`` -> ``a/b/file-signed.pdf``. Only the last segment's extension counts."""
    head, tail = posixpath.split(path)
    stem, ext = posixpath.splitext(tail)
    return posixpath.join(head, f"{stem}{SIGNED_SUFFIX}{ext}") if head else f"{stem}{SIGNED_SUFFIX}{ext}"


def append_audit(session: Session, document_id: int, user_id: Optional[int], action: str, details: dict):
    session.add(AuditLogEntry(document_id=document_id, user_id=user_id, action=action, details=details))
    session.commit()


def _run_hook(session: Session, name: str, fn: Callable, *args, **kwargs):
    """Run a post-commit side effect; failures are logged and rolled back, never raised."""
    try:
        return fn(*args, **kwargs)
    except Exception:
        session.rollback()
        logger.exception("post-commit hook failed", hook=name)
        return None


def _requests_for(session: Session, document_id: int) -> List[SignatureRequest]:
    return session.exec(
        select(SignatureRequest).where(SignatureRequest.document_id == document_id).order_by(SignatureRequest.id)
    ).all()


def _load_document(session: Session, principal: ActingPrincipal, document_id: int) -> Document:
    document = session.get(Document, document_id)
    if not document:
        raise NotFound("document", document_id)
    try:
        load_visible_company(session, principal, document.company_id)
    except NotFound:
        raise NotFound("document", document_id)
    return document


def _load_owned_document(session: Session, principal: ActingPrincipal, document_id: int) -> Document:
    document = _load_document(session, principal, document_id)
    load_owned_company(session, principal, document.company_id)
    return document


def _signer_entries(session: Session, requests: List[SignatureRequest]) -> List[compositor.SignerEntry]:
    entries = []
    for req in requests:
        profile = session.get(Profile, req.signer_id)
        email = profile.email if profile else ""
        name = (profile.full_name if profile else None) or email or "Unknown"
        entries.append(
            compositor.SignerEntry(
                name=name,
                email=email,
                signature_data=req.signature_data or "",
                signed_at=req.signed_at or utcnow(),
            )
        )
    return entries


# ---------- upload ----------

def upload_document(
    session: Session,
    principal: ActingPrincipal,
    company_id: int,
    title: str,
    description: Optional[str],
    filename: str,
    data: bytes,
    content_type: Optional[str],
    requires_signatures: bool,
    signer_ids: Optional[List[int]] = None,
) -> Document:
    company = load_owned_company(session, principal, company_id)
    title = (title or "").strip()
    if not title:
        raise InvalidInput("title is required")
    if not data:
        raise InvalidInput("file is required")

    signers: List[int] = []
    if requires_signatures:
        for signer_id in signer_ids or []:
            if signer_id not in signers:
                signers.append(signer_id)
        if not signers:
            raise InvalidInput("select at least one board member to sign")
        for signer_id in signers:
            if signer_id != company.owner_id and not is_active_member(session, company_id, signer_id):
                raise InvalidInput(
                    "signers must be active board members of the company",
                    {"signer_id": signer_id},
                )

    content_type = (content_type or "application/octet-stream").lower()
    doc = Document(
        company_id=company_id,
        title=title,
        description=(description or "").strip() or None,
        file_path="pending",
        file_name=filename or "document",
        file_size=len(data),
        file_type=content_type,
        uploaded_by=principal.user_id,
        requires_all_signatures=requires_signatures,
        status=DocumentStatus.PENDING if requires_signatures else DocumentStatus.FULLY_SIGNED,
    )
    session.add(doc)
    session.flush()
    key = f"companies/{company_id}/documents/{doc.id}-{safe_filename(filename)}"
    try:
        storage.put_bytes(key, data, content_type=content_type)
    except DependencyError:
        session.rollback()
        raise
    doc.file_path = key
    session.add(doc)
    for signer_id in signers:
        session.add(SignatureRequest(document_id=doc.id, company_id=company_id, signer_id=signer_id))
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        storage.delete_objects([key])
        raise
    session.refresh(doc)
    logger.info(
        "document uploaded",
        document_id=doc.id,
        company_id=company_id,
        requires_signatures=requires_signatures,
        signers=len(signers),
    )
    _run_hook(
        session, "audit", append_audit, session, doc.id, principal.user_id, "uploaded",
        {
            "title": title,
            "file_name": doc.file_name,
            "requires_signature": requires_signatures,
            "board_members_count": len(signers),
        },
    )
    # the audit commit expires the row
    session.refresh(doc)
    return doc


# ---------- sign / decline ----------

def sign_document(session: Session, principal: ActingPrincipal, request_id: int, signature_data: str) -> dict:
    request = session.get(SignatureRequest, request_id)
    if not request:
        raise NotFound("signature request", request_id)
    document = session.get(Document, request.document_id)
    if not document:
        raise NotFound("signature request", request_id)

    if document.status == DocumentStatus.CANCELLED and request.signer_id == principal.user_id:
        raise Conflict("document has been cancelled", {"document_id": document.id})
    ledger.sign(request, principal, signature_data)
    session.add(request)
    session.flush()

    requests = _requests_for(session, document.id)
    complete = ledger.all_signed(requests)
    previous_status = document.status
    document.status = DocumentStatus.FULLY_SIGNED if complete else DocumentStatus.PARTIALLY_SIGNED
    document.updated_at = utcnow()
    session.add(document)
    session.commit()
    session.refresh(document)

    logger.info(
        "signature recorded",
        request_id=request_id,
        document_id=document.id,
        status_from=previous_status,
        status_to=document.status,
    )
    _run_hook(session, "audit", append_audit, session, document.id, principal.user_id, "signed", {"signature_id": request_id})

    artifact_generated = False
    if complete and compositor.supports(document.file_type):
        artifact_generated = _run_hook(
            session, "signed_artifact", generate_signed_artifact, session, document, principal.user_id
        ) is not None
        session.refresh(document)

    return {
        "ok": True,
        "document_status": document.status,
        "fully_signed": complete,
        "signed_artifact": artifact_generated,
    }


def decline_document(session: Session, principal: ActingPrincipal, request_id: int, reason: Optional[str] = None) -> dict:
    request = session.get(SignatureRequest, request_id)
    if not request:
        raise NotFound("signature request", request_id)
    document = session.get(Document, request.document_id)
    if document and document.status == DocumentStatus.CANCELLED and request.signer_id == principal.user_id:
        raise Conflict("document has been cancelled", {"document_id": document.id})

    ledger.decline(request, principal, reason)
    session.add(request)
    session.commit()
    session.refresh(request)

    logger.info("signature declined", request_id=request_id, document_id=request.document_id)
    _run_hook(
        session, "audit", append_audit, session, request.document_id, principal.user_id, "declined",
        {"signature_id": request_id, "reason": request.decline_reason},
    )
    return {"ok": True, "status": request.status, "reason": request.decline_reason}


def revoke_member_requests(session: Session, principal: ActingPrincipal, company_id: int, user_id: int) -> List[int]:
    """Decline every pending request of a signer whose board membership was removed."""
    pending = session.exec(
        select(SignatureRequest).where(
            SignatureRequest.company_id == company_id,
            SignatureRequest.signer_id == user_id,
            SignatureRequest.status == SignatureStatus.PENDING,
        )
    ).all()
    for request in pending:
        ledger.revoke(request)
        session.add(request)
    session.commit()
    for request in pending:
        logger.info("signature request revoked", request_id=request.id, document_id=request.document_id)
        _run_hook(
            session, "audit", append_audit, session, request.document_id, principal.user_id, "declined",
            {"signature_id": request.id, "reason": request.decline_reason, "revoked_signer_id": user_id},
        )
    return [r.id for r in pending]


# ---------- cancel / delete ----------

def cancel_document(session: Session, principal: ActingPrincipal, document_id: int) -> Document:
    document = _load_owned_document(session, principal, document_id)
    if document.status not in (DocumentStatus.PENDING, DocumentStatus.PARTIALLY_SIGNED):
        raise Conflict(
            "only documents awaiting signatures can be cancelled",
            {"document_id": document_id, "status": document.status},
        )
    document.status = DocumentStatus.CANCELLED
    document.updated_at = utcnow()
    session.add(document)
    session.commit()
    logger.info("document cancelled", document_id=document_id)
    _run_hook(session, "audit", append_audit, session, document_id, principal.user_id, "cancelled", {})
    session.refresh(document)
    return document


def delete_document(session: Session, principal: ActingPrincipal, document_id: int) -> List[str]:
    """Remove both blobs (best-effort) and the document with its requests and audit trail.

    Returns the storage keys that could not be removed.
    """
    document = _load_owned_document(session, principal, document_id)
    failed = storage.delete_objects([document.file_path, document.signed_file_path])
    if failed:
        logger.warning("document deleted with orphaned blobs", document_id=document_id, keys=failed)

    session.exec(delete(SignatureRequest).where(SignatureRequest.document_id == document_id))
    session.exec(delete(AuditLogEntry).where(AuditLogEntry.document_id == document_id))
    session.delete(document)
    session.commit()
    logger.info("document deleted", document_id=document_id)
    return failed


# ---------- signed artifact ----------

def generate_signed_artifact(session: Session, document: Document, actor_id: Optional[int] = None) -> str:
    """Compose the signature page onto the original and store it beside it.

    Re-verifies that every request is signed, then downloads, composites,
    uploads (overwriting) and records ``signed_file_path``. Safe to run again
    for a document that already has a signed variant. Returns the signed path.
    """
    requests = _requests_for(session, document.id)
    if not requests:
        raise ArtifactSkipped("No signature requests", {"document_id": document.id})
    if not ledger.all_signed(requests):
        raise ArtifactSkipped("Incomplete signatures", {"document_id": document.id})
    if not compositor.supports(document.file_type):
        raise ArtifactSkipped("Unsupported file type", {"document_id": document.id, "file_type": document.file_type})

    logger.info("generating signed artifact", document_id=document.id)
    original = storage.get_bytes(document.file_path)
    signed_pdf = compositor.add_signature_page(original, document.title, _signer_entries(session, requests))
    signed_path = signed_file_path_for(document.file_path)
    storage.put_bytes(signed_path, signed_pdf, content_type="application/pdf")

    document.signed_file_path = signed_path
    document.status = DocumentStatus.FULLY_SIGNED
    document.updated_at = utcnow()
    session.add(document)
    session.commit()
    session.refresh(document)

    sha = sha256_bytes(signed_pdf)
    logger.info("signed artifact stored", document_id=document.id, path=signed_path, sha256=sha)
    _run_hook(
        session, "audit", append_audit, session, document.id, actor_id, "signed_pdf_generated",
        {"signed_file_path": signed_path, "sha256": sha, "signers": len(requests)},
    )
    return signed_path


def regenerate_signed_artifact(session: Session, principal: ActingPrincipal, document_id: int) -> Document:
    document = _load_owned_document(session, principal, document_id)
    if document.status != DocumentStatus.FULLY_SIGNED:
        raise Conflict("document is not fully signed", {"document_id": document_id, "status": document.status})
    generate_signed_artifact(session, document, principal.user_id)
    return document


@dataclass
class RepairOutcome:
    document_id: int
    title: str
    status: str  # success|skipped|error
    reason: Optional[str] = None


@dataclass
class RepairReport:
    results: List[RepairOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.status == "success")

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.status == "error")

    @property
    def message(self) -> str:
        if not self.results:
            return "No documents need regeneration"
        return f"Regenerated {self.success_count} signed PDFs ({self.error_count} errors)"


def documents_needing_repair(session: Session, principal: ActingPrincipal) -> List[Document]:
    stmt = select(Document).where(
        Document.status == DocumentStatus.FULLY_SIGNED,
        Document.signed_file_path.is_(None),
        Document.requires_all_signatures == True,  # noqa: E712
        func.lower(Document.file_type).in_(compositor.SUPPORTED_TYPES),
    )
    if not principal.is_admin:
        owned = select(Company.id).where(Company.owner_id == principal.user_id)
        stmt = stmt.where(Document.company_id.in_(owned))
    return session.exec(stmt.order_by(Document.id)).all()


def repair_signed_artifacts(session: Session, principal: ActingPrincipal) -> RepairReport:
    """Regenerate missing signed PDFs one document at a time.

    Each document's outcome is recorded independently; a failure never stops
    the batch.
    """
    report = RepairReport()
    documents = documents_needing_repair(session, principal)
    logger.info("signed artifact repair started", documents=len(documents))
    for doc in documents:
        doc_id, title = doc.id, doc.title
        try:
            generate_signed_artifact(session, doc, principal.user_id)
            outcome = RepairOutcome(doc_id, title, "success")
        except ArtifactSkipped as exc:
            outcome = RepairOutcome(doc_id, title, "skipped", exc.message)
        except DependencyError as exc:
            session.rollback()
            outcome = RepairOutcome(doc_id, title, "error", exc.message)
        except Exception as exc:
            session.rollback()
            logger.exception("signed artifact repair failed", document_id=doc_id)
            outcome = RepairOutcome(doc_id, title, "error", str(exc))
        logger.info("signed artifact repair outcome", document_id=doc_id, status=outcome.status, reason=outcome.reason)
        report.results.append(outcome)
    logger.info("signed artifact repair finished", success=report.success_count, errors=report.error_count)
    return report


# ---------- read models ----------

def list_company_documents(session: Session, principal: ActingPrincipal, company_id: int) -> List[dict]:
    load_visible_company(session, principal, company_id)
    documents = session.exec(
        select(Document).where(Document.company_id == company_id).order_by(Document.created_at.desc(), Document.id.desc())
    ).all()
    results = []
    for doc in documents:
        requests = _requests_for(session, doc.id)
        results.append(
            {
                **doc.model_dump(),
                "signatures": [
                    {
                        "id": r.id,
                        "signer_id": r.signer_id,
                        "status": r.status,
                        "signed_at": r.signed_at,
                        "declined_at": r.declined_at,
                        "decline_reason": r.decline_reason,
                    }
                    for r in requests
                ],
            }
        )
    return results


def list_pending_requests(session: Session, principal: ActingPrincipal) -> List[dict]:
    rows = session.exec(
        select(SignatureRequest, Document, Company)
        .where(
            SignatureRequest.signer_id == principal.user_id,
            SignatureRequest.status == SignatureStatus.PENDING,
            SignatureRequest.document_id == Document.id,
            Document.company_id == Company.id,
            Document.status != DocumentStatus.CANCELLED,
        )
        .order_by(SignatureRequest.created_at.desc())
    ).all()
    return [
        {
            "id": req.id,
            "document_id": doc.id,
            "title": doc.title,
            "company_id": company.id,
            "company_name": company.name,
            "created_at": req.created_at,
        }
        for req, doc, company in rows
    ]


def _variant_path(document: Document, variant: str) -> str:
    if variant == "original":
        return document.file_path
    if variant == "signed":
        if not document.signed_file_path:
            raise NotFound("signed document", document.id)
        return document.signed_file_path
    raise InvalidInput("variant must be 'original' or 'signed'", {"variant": variant})


def document_download(session: Session, principal: ActingPrincipal, document_id: int, variant: str = "original"):
    document = _load_document(session, principal, document_id)
    path = _variant_path(document, variant)
    return document, storage.get_bytes(path)


def document_url(session: Session, principal: ActingPrincipal, document_id: int, variant: str = "original") -> str:
    document = _load_document(session, principal, document_id)
    return storage.signed_url(_variant_path(document, variant), SIGNED_URL_TTL_SECONDS)
