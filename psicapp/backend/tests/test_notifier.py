import asyncio
import os
import shutil
import tempfile
import time
import unittest
from unittest import mock

import requests
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from psicapp.backend.app import notifier as notifier_module
from psicapp.backend.app.database import Base
from psicapp.backend.app.models import Notification, Profile, RiskReport, User
from psicapp.backend.app.notifier import AdminNotifier, PushClient, PushDeliveryError
from psicapp.backend.app.outcomes import NOTIFICATION_FAILURE, STORE_ERROR


class FakePushClient:
    def __init__(self, failing_tokens=()):
        self.sent = []
        self.failing_tokens = set(failing_tokens)

    async def send_async(self, token, title, body, data=None):
        if token in self.failing_tokens:
            raise PushDeliveryError("DeviceNotRegistered")
        self.sent.append({"token": token, "title": title, "body": body, "data": data})


class FlakyNotifier(AdminNotifier):
    def __init__(self, *args, failing_admin_ids=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.failing_admin_ids = set(failing_admin_ids)

    def record_notification(self, admin, report):
        if admin.id in self.failing_admin_ids:
            raise SQLAlchemyError("insert rejected")
        super().record_notification(admin, report)



class SlowNotifier(AdminNotifier):
    def __init__(self, *args, delay=0.3, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay
        self.recorded = []

    def record_notification(self, admin, report):
        time.sleep(self.delay)
        self.recorded.append(admin.id)

class AdminNotifierTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.engine = create_engine(
            f"sqlite:///{os.path.join(self.tmpdir, 'psicapp.db')}",
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        db = self.SessionLocal()
        try:
            author = self.add_user(db, "student@example.com", "user")
            self.report = RiskReport(
                id="report-1",
                user_id=author.id,
                message_content="no quiero vivir",
                detected_keywords=["no quiero vivir"],
            )
            db.add(self.report)
            db.commit()
            db.refresh(self.report)
            db.expunge(self.report)
        finally:
            db.close()

    def tearDown(self):
        self.engine.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def add_user(self, db, email, role, push_token=None):
        user = User(email=email, hashed_password="x")
        db.add(user)
        db.flush()
        db.add(Profile(id=user.id, username=email, role=role, push_token=push_token))
        db.commit()
        db.refresh(user)
        return user

    def add_admins(self, count, with_tokens=True):
        db = self.SessionLocal()
        try:
            return [
                self.add_user(
                    db,
                    f"admin{index}@example.com",
                    "admin",
                    push_token=f"ExponentPushToken[{index}]" if with_tokens else None,
                ).id
                for index in range(count)
            ]
        finally:
            db.close()

    def notification_rows(self):
        db = self.SessionLocal()
        try:
            return db.query(Notification).order_by(Notification.user_id).all()
        finally:
            db.close()

    def test_no_admins_is_success_without_writes(self):
        push = FakePushClient()
        result = asyncio.run(AdminNotifier(self.SessionLocal, push).notify_admins(self.report))
        self.assertTrue(result.success)
        self.assertEqual(result.data.outcomes, [])
        self.assertEqual(self.notification_rows(), [])
        self.assertEqual(push.sent, [])

    def test_every_admin_gets_notification_and_push(self):
        admin_ids = self.add_admins(3)
        push = FakePushClient()
        result = asyncio.run(AdminNotifier(self.SessionLocal, push).notify_admins(self.report))
        self.assertTrue(result.success)
        self.assertEqual(result.data.succeeded, 3)
        self.assertEqual(result.data.failed, 0)
        rows = self.notification_rows()
        self.assertEqual([row.user_id for row in rows], admin_ids)
        for row in rows:
            self.assertEqual(row.related_id, "report-1")
            self.assertEqual(row.related_type, "risk_report")
            self.assertFalse(row.read)
        self.assertEqual(len(push.sent), 3)
        self.assertEqual(push.sent[0]["data"], {"screen": "admin", "reportId": "report-1"})

    def test_one_failed_insert_is_isolated(self):
        admin_ids = self.add_admins(3)
        notifier = FlakyNotifier(self.SessionLocal, FakePushClient(), failing_admin_ids={admin_ids[1]})
        result = asyncio.run(notifier.notify_admins(self.report))
        self.assertTrue(result.success)
        outcomes = result.data.outcomes
        self.assertEqual(len(outcomes), 3)
        failures = [item for item in outcomes if not item["success"]]
        self.assertEqual(len(failures), 1)
        self.assertEqual(failures[0]["admin_id"], admin_ids[1])
        self.assertEqual(failures[0]["error"], NOTIFICATION_FAILURE)
        self.assertEqual(result.data.to_dict()["failed"], 1)
        self.assertEqual(len(self.notification_rows()), 2)

    def test_push_failure_marks_admin_failed_but_keeps_record(self):
        self.add_admins(2)
        push = FakePushClient(failing_tokens={"ExponentPushToken[0]"})
        result = asyncio.run(AdminNotifier(self.SessionLocal, push).notify_admins(self.report))
        self.assertTrue(result.success)
        self.assertEqual(result.data.failed, 1)
        self.assertIn("push", [item for item in result.data.outcomes if not item["success"]][0]["detail"])
        self.assertEqual(len(self.notification_rows()), 2)

    def test_admin_lookup_failure_fails_fanout(self):
        with self.engine.begin() as connection:
            connection.execute(text("DROP TABLE profiles"))
        push = FakePushClient()
        result = asyncio.run(AdminNotifier(self.SessionLocal, push).notify_admins(self.report))
        self.assertFalse(result.success)
        self.assertEqual(result.error, STORE_ERROR)
        self.assertEqual(self.notification_rows(), [])
        self.assertEqual(push.sent, [])

    def test_notification_inserts_run_concurrently(self):
        admin_ids = self.add_admins(4, with_tokens=False)
        notifier = SlowNotifier(self.SessionLocal, FakePushClient(), delay=0.3)
        started = time.perf_counter()
        result = asyncio.run(notifier.notify_admins(self.report))
        elapsed = time.perf_counter() - started
        self.assertEqual(result.data.succeeded, 4)
        self.assertEqual(sorted(notifier.recorded), admin_ids)
        self.assertLess(elapsed, 0.9)

    def test_admin_without_push_token_skips_push(self):
        self.add_admins(1, with_tokens=False)
        push = FakePushClient()
        result = asyncio.run(AdminNotifier(self.SessionLocal, push).notify_admins(self.report))
        self.assertEqual(result.data.succeeded, 1)
        self.assertEqual(push.sent, [])
        self.assertEqual(len(self.notification_rows()), 1)


class PushClientTests(unittest.TestCase):
    def test_disabled_client_makes_no_request(self):
        client = PushClient(url="http://push.invalid", enabled=False)
        with mock.patch.object(notifier_module.requests, "post") as post:
            client.send("ExponentPushToken[x]", "t", "b")
        post.assert_not_called()

    def test_posts_expo_payload(self):
        client = PushClient(url="http://push.invalid", enabled=True, timeout=3)
        response = mock.Mock(ok=True, status_code=200)
        response.json.return_value = {"data": {"status": "ok", "id": "ticket"}}
        with mock.patch.object(notifier_module.requests, "post", return_value=response) as post:
            client.send("ExponentPushToken[x]", "Title", "Body", {"screen": "admin"})
        args, kwargs = post.call_args
        self.assertEqual(args[0], "http://push.invalid")
        self.assertEqual(kwargs["json"]["to"], "ExponentPushToken[x]")
        self.assertEqual(kwargs["json"]["data"], {"screen": "admin"})
        self.assertEqual(kwargs["timeout"], 3)

    def test_error_ticket_raises(self):
        client = PushClient(url="http://push.invalid", enabled=True)
        response = mock.Mock(ok=True, status_code=200)
        response.json.return_value = {"data": {"status": "error", "message": "DeviceNotRegistered"}}
        with mock.patch.object(notifier_module.requests, "post", return_value=response):
            with self.assertRaises(PushDeliveryError):
                client.send("ExponentPushToken[x]", "t", "b")

    def test_transport_error_raises(self):
        client = PushClient(url="http://push.invalid", enabled=True)
        with mock.patch.object(
            notifier_module.requests,
            "post",
            side_effect=requests.ConnectionError("refused"),
        ):
            with self.assertRaises(PushDeliveryError):
                client.send("ExponentPushToken[x]", "t", "b")


if __name__ == "__main__":
    unittest.main()
