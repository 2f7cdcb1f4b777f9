from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import ROLE_ADMIN, Profile, RiskReport, User
from .outcomes import (
    INVALID_ARGUMENT,
    LOOKUP_DEGRADED,
    NOT_FOUND,
    STORE_ERROR,
    UNAUTHENTICATED,
    Outcome,
    fail,
    ok,
)

logger = logging.getLogger("psicapp.risk_reports")

SEVERITY_LEVELS = ("low", "medium", "high")


@dataclass
class AdminProfile:
    id: int
    username: str
    full_name: Optional[str]
    role: str
    push_token: Optional[str] = None


def serialize_report(report: RiskReport) -> dict:
    return {
        "id": report.id,
        "user_id": report.user_id,
        "message_content": report.message_content,
        "detected_keywords": list(report.detected_keywords or []),
        "timestamp": report.timestamp.isoformat(),
        "reviewed": bool(report.reviewed),
        "severity_level": report.severity_level,
        "notes": report.notes,
    }


def persist_report(db: Session, report: RiskReport) -> None:
    db.add(report)
    db.commit()
    db.refresh(report)


async def create_risk_report(
    db: Session,
    user: Optional[User],
    message_content: str,
    detected_keywords: List[str],
    notifier=None,
) -> Outcome:
    """Persist a risk report for ``user`` and fan out admin notifications.

    Notification failures are logged and never undo the stored report.
    """
    if user is None:
        logger.error("Cannot create a risk report without an authenticated user")
        return fail(UNAUTHENTICATED, "No authenticated user")
    if not detected_keywords:
        return fail(INVALID_ARGUMENT, "A risk report needs at least one detected keyword")

    report = RiskReport(
        id=str(uuid.uuid4()),
        user_id=user.id,
        message_content=message_content,
        detected_keywords=list(detected_keywords),
        timestamp=datetime.utcnow(),
        reviewed=False,
    )
    try:
        await asyncio.to_thread(persist_report, db, report)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to store risk report for user %s", user.id, exc_info=True)
        return fail(STORE_ERROR, str(exc))

    logger.info(
        "Risk report %s created for user %s (keywords: %s)",
        report.id,
        user.id,
        ", ".join(report.detected_keywords),
    )

    if notifier is not None:
        try:
            fanout = await notifier.notify_admins(report)
        except Exception:
            logger.exception("Admin notification crashed for risk report %s", report.id)
        else:
            if not fanout.success:
                logger.error(
                    "Admin notification failed for risk report %s: %s",
                    report.id,
                    fanout.detail,
                )
    return ok(report)


def get_risk_report(db: Session, report_id: str) -> Outcome:
    try:
        report = db.query(RiskReport).filter(RiskReport.id == report_id).first()
    except SQLAlchemyError as exc:
        logger.error("Failed to load risk report %s", report_id, exc_info=True)
        return fail(STORE_ERROR, str(exc))
    if report is None:
        return fail(NOT_FOUND, f"Risk report {report_id} not found")
    return ok(report)


def list_risk_reports(db: Session, only_unreviewed: bool = False) -> Outcome:
    try:
        query = db.query(RiskReport)
        if only_unreviewed:
            query = query.filter(RiskReport.reviewed.is_(False))
        reports = query.order_by(RiskReport.timestamp.desc()).all()
    except SQLAlchemyError as exc:
        logger.error("Failed to list risk reports", exc_info=True)
        return fail(STORE_ERROR, str(exc))

    if not reports:
        return ok([])

    payload = [serialize_report(report) for report in reports]
    user_ids = sorted({report.user_id for report in reports})
    try:
        profiles = db.query(Profile).filter(Profile.id.in_(user_ids)).all()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Profile lookup failed, returning risk reports without profiles", exc_info=True)
        for item in payload:
            item["profile"] = None
        return ok(payload, warnings=[LOOKUP_DEGRADED])

    profiles_by_id = {
        profile.id: {
            "username": profile.username,
            "full_name": profile.full_name,
            "avatar_url": profile.avatar_url,
        }
        for profile in profiles
    }
    for item in payload:
        item["profile"] = profiles_by_id.get(item["user_id"])
    return ok(payload)


def update_risk_report(
    db: Session,
    report_id: str,
    reviewed: bool,
    notes: Optional[str] = None,
    severity_level: Optional[str] = None,
) -> Outcome:
    if severity_level is not None and severity_level not in SEVERITY_LEVELS:
        return fail(INVALID_ARGUMENT, f"Unknown severity level: {severity_level}")

    found = get_risk_report(db, report_id)
    if not found.success:
        return found
    report = found.data

    report.reviewed = reviewed
    if notes is not None:
        report.notes = notes
    if severity_level is not None:
        report.severity_level = severity_level
    try:
        db.commit()
        db.refresh(report)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to update risk report %s", report_id, exc_info=True)
        return fail(STORE_ERROR, str(exc))
    return ok(report)


def list_admins(db: Session) -> Outcome:
    try:
        profiles = (
            db.query(Profile)
            .filter(Profile.role == ROLE_ADMIN)
            .order_by(Profile.id)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.error("Failed to look up administrators", exc_info=True)
        return fail(STORE_ERROR, str(exc))
    return ok([
        AdminProfile(
            id=profile.id,
            username=profile.username,
            full_name=profile.full_name,
            role=profile.role,
            push_token=profile.push_token,
        )
        for profile in profiles
    ])
