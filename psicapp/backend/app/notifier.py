from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import Notification, RiskReport
from .outcomes import NOTIFICATION_FAILURE, Outcome, ok
from .risk_reports import AdminProfile, list_admins

logger = logging.getLogger("psicapp.notifier")

DEFAULT_PUSH_URL = "https://exp.host/--/api/v2/push/send"
RELATED_TYPE = "risk_report"

NOTIFICATION_TITLE = "Alerta: Posible riesgo de suicidio"
NOTIFICATION_MESSAGE = (
    "Se ha detectado un mensaje con posible riesgo de suicidio. Revisa los reportes de riesgo."
)
PUSH_TITLE = "URGENTE: Alerta de riesgo de suicidio"
PUSH_BODY = (
    "Se ha detectado un mensaje con palabras clave relacionadas con suicidio. "
    "Revisa los reportes de riesgo inmediatamente."
)


class PushDeliveryError(Exception):
    pass


def env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class PushClient:
    """Sends immediate push notifications through the Expo push endpoint."""

    def __init__(
        self,
        url: Optional[str] = None,
        enabled: Optional[bool] = None,
        timeout: Optional[float] = None,
    ):
        self.url = url or os.getenv("PSICAPP_PUSH_URL", DEFAULT_PUSH_URL)
        self.enabled = env_flag("PSICAPP_PUSH_ENABLED", "1") if enabled is None else enabled
        self.timeout = timeout if timeout is not None else float(os.getenv("PSICAPP_PUSH_TIMEOUT", "10"))

    def send(self, token: str, title: str, body: str, data: Optional[dict] = None) -> None:
        if not self.enabled:
            logger.info("Push delivery disabled, skipping push to %s", token)
            return
        try:
            resp = requests.post(
                self.url,
                json={
                    "to": token,
                    "title": title,
                    "body": body,
                    "data": data or {},
                    "sound": "default",
                    "priority": "high",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise PushDeliveryError(f"Push request failed: {exc}") from exc
        if not resp.ok:
            raise PushDeliveryError(f"Push endpoint returned {resp.status_code}")
        try:
            ticket = resp.json().get("data")
        except ValueError:
            return
        if isinstance(ticket, dict) and ticket.get("status") == "error":
            raise PushDeliveryError(ticket.get("message") or "Push ticket rejected")

    async def send_async(self, token: str, title: str, body: str, data: Optional[dict] = None) -> None:
        await asyncio.to_thread(self.send, token, title, body, data)


@dataclass
class FanoutSummary:
    outcomes: List[dict] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.outcomes if item["success"])

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    def to_dict(self) -> dict:
        return {
            "outcomes": self.outcomes,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }


class AdminNotifier:
    """Best-effort broadcast of a new risk report to every administrator.

    Each administrator gets one in-app notification row and, when a push
    token is registered, one push attempt. Attempts run concurrently, are
    never retried, and a failure for one administrator does not affect the
    others.
    """

    def __init__(self, session_factory: Callable[[], Session], push_client: Optional[PushClient] = None):
        self.session_factory = session_factory
        self.push_client = push_client

    async def notify_admins(self, report: RiskReport) -> Outcome:
        admins = await asyncio.to_thread(self.load_admins)
        if not admins.success:
            return admins
        if not admins.data:
            logger.warning("No administrators found to notify about risk report %s", report.id)
            return ok(FanoutSummary())

        outcomes = await asyncio.gather(
            *(self.notify_admin(admin, report) for admin in admins.data)
        )
        summary = FanoutSummary(outcomes=list(outcomes))
        if summary.failed:
            logger.warning(
                "Risk report %s: notified %s of %s administrators",
                report.id,
                summary.succeeded,
                len(summary.outcomes),
            )
        return ok(summary)

    async def notify_admin(self, admin: AdminProfile, report: RiskReport) -> dict:
        errors: List[str] = []
        try:
            await asyncio.to_thread(self.record_notification, admin, report)
        except Exception as exc:
            logger.error("Failed to create notification for admin %s", admin.id, exc_info=True)
            errors.append(f"notification: {exc}")

        if self.push_client is not None and admin.push_token:
            try:
                await self.push_client.send_async(
                    admin.push_token,
                    PUSH_TITLE,
                    PUSH_BODY,
                    {"screen": "admin", "reportId": report.id},
                )
            except Exception as exc:
                logger.error("Failed to send push to admin %s", admin.id, exc_info=True)
                errors.append(f"push: {exc}")

        if errors:
            return {
                "success": False,
                "admin_id": admin.id,
                "error": NOTIFICATION_FAILURE,
                "detail": "; ".join(errors),
            }
        return {"success": True, "admin_id": admin.id}

    def load_admins(self) -> Outcome:
        db = self.session_factory()
        try:
            return list_admins(db)
        finally:
            db.close()

    def record_notification(self, admin: AdminProfile, report: RiskReport) -> None:
        db = self.session_factory()
        try:
            db.add(Notification(
                user_id=admin.id,
                title=NOTIFICATION_TITLE,
                message=NOTIFICATION_MESSAGE,
                related_id=report.id,
                related_type=RELATED_TYPE,
                read=False,
                created_at=datetime.utcnow(),
            ))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
