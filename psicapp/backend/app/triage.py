from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import ROLE_ADMIN, Profile, User
from .outcomes import STORE_ERROR, UNAUTHENTICATED, UNAUTHORIZED, Outcome, fail, ok
from .risk_reports import get_risk_report, list_risk_reports, update_risk_report

logger = logging.getLogger("psicapp.triage")


def require_admin(db: Session, actor: Optional[User]) -> Outcome:
    if actor is None:
        return fail(UNAUTHENTICATED, "No authenticated user")
    try:
        profile = db.query(Profile).filter(Profile.id == actor.id).first()
    except SQLAlchemyError as exc:
        logger.error("Failed to resolve role for user %s", actor.id, exc_info=True)
        return fail(STORE_ERROR, str(exc))
    if profile is None or profile.role != ROLE_ADMIN:
        logger.warning("User %s attempted to access risk triage without the admin role", actor.id)
        return fail(UNAUTHORIZED, "Administrator role required")
    return ok(profile)


def triage_list(db: Session, actor: Optional[User], only_unreviewed: bool = False) -> Outcome:
    gate = require_admin(db, actor)
    if not gate.success:
        return gate
    return list_risk_reports(db, only_unreviewed=only_unreviewed)


def triage_get(db: Session, actor: Optional[User], report_id: str) -> Outcome:
    gate = require_admin(db, actor)
    if not gate.success:
        return gate
    return get_risk_report(db, report_id)


def triage_update(
    db: Session,
    actor: Optional[User],
    report_id: str,
    reviewed: bool,
    notes: Optional[str] = None,
    severity_level: Optional[str] = None,
) -> Outcome:
    gate = require_admin(db, actor)
    if not gate.success:
        return gate
    result = update_risk_report(
        db,
        report_id,
        reviewed=reviewed,
        notes=notes,
        severity_level=severity_level,
    )
    if result.success:
        logger.info(
            "Admin %s updated risk report %s (reviewed=%s, severity=%s)",
            actor.id,
            report_id,
            reviewed,
            result.data.severity_level,
        )
    return result
