import os
import shutil
import tempfile
import unittest
from datetime import datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from psicapp.backend.app import outcomes
from psicapp.backend.app.database import Base
from psicapp.backend.app.models import Profile, RiskReport, User
from psicapp.backend.app.triage import require_admin, triage_get, triage_list, triage_update


class TriageTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.engine = create_engine(
            f"sqlite:///{os.path.join(self.tmpdir, 'psicapp.db')}",
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(self.engine)
        self.db = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)()
        self.student = self.add_user("student@example.com", "user")
        self.admin = self.add_user("admin@example.com", "admin")
        self.db.add(RiskReport(
            id="r1",
            user_id=self.student.id,
            message_content="quiero terminar con todo",
            detected_keywords=["terminar con todo"],
            timestamp=datetime(2025, 3, 1, 10, 0),
        ))
        self.db.commit()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def add_user(self, email, role):
        user = User(email=email, hashed_password="x")
        self.db.add(user)
        self.db.flush()
        self.db.add(Profile(id=user.id, username=email, role=role))
        self.db.commit()
        self.db.refresh(user)
        return user

    def test_anonymous_actor_is_unauthenticated(self):
        result = triage_list(self.db, None)
        self.assertEqual(result.error, outcomes.UNAUTHENTICATED)

    def test_non_admin_is_unauthorized(self):
        for call in (
            lambda: triage_list(self.db, self.student),
            lambda: triage_get(self.db, self.student, "r1"),
            lambda: triage_update(self.db, self.student, "r1", reviewed=True),
        ):
            result = call()
            self.assertFalse(result.success)
            self.assertEqual(result.error, outcomes.UNAUTHORIZED)
            self.assertEqual(result.http_status, 403)
        report = self.db.query(RiskReport).filter(RiskReport.id == "r1").one()
        self.assertFalse(report.reviewed)

    def test_user_without_profile_is_unauthorized(self):
        orphan = User(email="orphan@example.com", hashed_password="x")
        self.db.add(orphan)
        self.db.commit()
        self.assertEqual(require_admin(self.db, orphan).error, outcomes.UNAUTHORIZED)

    def test_admin_lists_reports_with_profile(self):
        result = triage_list(self.db, self.admin)
        self.assertTrue(result.success)
        self.assertEqual(result.data[0]["id"], "r1")
        self.assertEqual(result.data[0]["timestamp"], "2025-03-01T10:00:00")
        self.assertEqual(result.data[0]["profile"]["username"], "student@example.com")

    def test_admin_update_tags_severity_and_notes(self):
        result = triage_update(
            self.db,
            self.admin,
            "r1",
            reviewed=True,
            notes="Derivado a psicología",
            severity_level="medium",
        )
        self.assertTrue(result.success)
        self.assertTrue(result.data.reviewed)
        self.assertEqual(result.data.severity_level, "medium")
        self.assertEqual(result.data.notes, "Derivado a psicología")
        self.assertEqual(triage_list(self.db, self.admin, only_unreviewed=True).data, [])

    def test_admin_get_missing_report(self):
        result = triage_get(self.db, self.admin, "nope")
        self.assertEqual(result.error, outcomes.NOT_FOUND)


if __name__ == "__main__":
    unittest.main()
