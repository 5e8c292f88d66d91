"""
Liveness / readiness.

GET /health answers {"status": "ok"}. With ?check_db=true it also runs a
trivial query and reports {"db": "ok"} or {"db": "error"}; with
?check_backends=true it reports how many stored servers point at an
unregistered backend plugin.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.server import ServerManager
from .deps import get_servers

router = APIRouter(tags=["health"])
log = logging.getLogger(__name__)


@router.get("/health")
def health(
    check_db: bool = Query(False),
    check_backends: bool = Query(False),
    db: Session = Depends(get_db),
    servers: ServerManager = Depends(get_servers),
) -> Dict[str, Any]:
    report: Dict[str, Any] = {"status": "ok"}
    if check_db:
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError:
            log.exception("Health probe: database query failed.")
            report["db"] = "error"
        else:
            report["db"] = "ok"
    if check_backends:
        report["invalid_backends"] = sum(1 for s in servers.load_all() if not s.has_valid_backend())
    return report
