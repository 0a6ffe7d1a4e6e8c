from dataclasses import asdict
from fastapi import APIRouter, Depends
from sqlmodel import Session
from ..auth import ActingPrincipal, resolve_principal
from ..db import get_session
from ..schemas import RepairReportOut
from .. import workflow

router = APIRouter()

@router.post("/regenerate-signed-pdfs", response_model=RepairReportOut)
def regenerate_signed_pdfs(
    session: Session = Depends(get_session),
    principal: ActingPrincipal = Depends(resolve_principal),
):
    report = workflow.repair_signed_artifacts(session, principal)
    return RepairReportOut(
        message=report.message,
        count=report.success_count,
        error_count=report.error_count,
        results=[asdict(r) for r in report.results],
    )
