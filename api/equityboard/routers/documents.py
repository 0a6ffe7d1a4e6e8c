from typing import List
from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from sqlmodel import Session
from ..auth import ActingPrincipal, resolve_principal
from ..db import get_session
from .. import workflow

router = APIRouter()

@router.post("/companies/{company_id}/documents", status_code=201)
async def upload_document(
    company_id: int,
    title: str = Form(""),
    description: str = Form(""),
    requires_signatures: bool = Form(False),
    signer_ids: List[int] = Form(default=[]),
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    data = await file.read()
    return workflow.upload_document(
        session,
        principal,
        company_id,
        title=title,
        description=description,
        filename=file.filename,
        data=data,
        content_type=file.content_type,
        requires_signatures=requires_signatures,
        signer_ids=signer_ids,
    )

@router.get("/companies/{company_id}/documents")
def list_company_documents(
    company_id: int,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    return workflow.list_company_documents(session, principal, company_id)

@router.get("/documents/{document_id}/file")
def download_document(
    document_id: int,
    variant: str = "original",
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    document, data = workflow.document_download(session, principal, document_id, variant)
    filename = document.file_name or f"document-{document_id}"
    if variant == "signed":
        base = filename[:-4] if filename.lower().endswith(".pdf") else filename
        filename = f"{base}-signed.pdf"
    media_type = "application/pdf" if variant == "signed" else document.file_type
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

@router.get("/documents/{document_id}/url")
def document_url(
    document_id: int,
    variant: str = "original",
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    return {"url": workflow.document_url(session, principal, document_id, variant)}

@router.post("/documents/{document_id}/cancel")
def cancel_document(
    document_id: int,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    return workflow.cancel_document(session, principal, document_id)

@router.post("/documents/{document_id}/regenerate")
def regenerate_signed_pdf(
    document_id: int,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    document = workflow.regenerate_signed_artifact(session, principal, document_id)
    return {"ok": True, "signed_file_path": document.signed_file_path}

@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: int,
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    workflow.delete_document(session, principal, document_id)
