"""Regenerate signed PDFs for fully signed documents that are missing one.

Usage: python -m equityboard.scripts.regenerate_signed_pdfs
"""
from sqlmodel import Session

from equityboard.auth import ActingPrincipal
from equityboard.config import LOG_JSON, LOG_LEVEL
from equityboard.db import engine, init_db
from equityboard.logger import setup_logging
from equityboard.workflow import repair_signed_artifacts


def main() -> int:
    setup_logging(LOG_LEVEL, use_json=LOG_JSON)
    init_db()
    with Session(engine) as session:
        report = repair_signed_artifacts(session, ActingPrincipal(is_admin=True))
    for outcome in report.results:
        suffix = f" ({outcome.reason})" if outcome.reason else ""
        print(f"{outcome.status:8} document {outcome.document_id}: {outcome.title}{suffix}")
    print(report.message)
    return 1 if report.error_count else 0


if __name__ == "__main__":
    raise SystemExit(main())
