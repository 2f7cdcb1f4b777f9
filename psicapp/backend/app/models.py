from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .database import Base

ROLE_USER = "user"
ROLE_ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    profile = relationship("Profile", uselist=False, back_populates="user")
    emotion_records = relationship("EmotionRecord", back_populates="user")
    emotion_reminder = relationship("EmotionReminder", uselist=False, back_populates="user")
    schedule_items = relationship("ScheduleItem", back_populates="user")


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    username = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ROLE_USER, index=True)
    push_token = Column(String, nullable=True)

    user = relationship("User", back_populates="profile")


class RiskReport(Base):
    __tablename__ = "risk_reports"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    message_content = Column(String, nullable=False)
    detected_keywords = Column(JSON, nullable=False, default=list)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    reviewed = Column(Boolean, default=False, nullable=False, index=True)
    severity_level = Column(String, nullable=True)
    notes = Column(String, nullable=True)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    related_id = Column(String, nullable=True)
    related_type = Column(String, nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class EmotionRecord(Base):
    __tablename__ = "emotion_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    emotion = Column(String, nullable=False)
    intensity = Column(Integer, nullable=False)
    note = Column(String, nullable=True)
    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="emotion_records")



class EmotionReminder(Base):
    __tablename__ = "emotion_reminders"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    enabled = Column(Boolean, default=False, nullable=False)
    hour = Column(Integer, default=20, nullable=False)
    minute = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="emotion_reminder")

class ScheduleItem(Base):
    __tablename__ = "schedule_items"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    item_type = Column(String, nullable=False, default="class")
    day = Column(Integer, nullable=False)
    start_time = Column(String, nullable=False)
    end_time = Column(String, nullable=True)
    location = Column(String, nullable=True)
    notes = Column(String, nullable=True)
    notifications_enabled = Column(Boolean, default=True, nullable=False)
    before_minutes = Column(Integer, default=10, nullable=False)
    include_wellness = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="schedule_items")
