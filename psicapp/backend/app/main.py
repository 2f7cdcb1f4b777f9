from __future__ import annotations

import asyncio
import logging
import os
import random
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.orm import Session

from .chat_assistant import WELCOME_MESSAGE, ChatAssistant, ChatSession
from .database import (
    DB_PATH,
    Base,
    SessionLocal,
    engine,
    ensure_profile_columns,
    ensure_schedule_columns,
    get_db,
)
from .emotions import (
    EMOTIONS,
    STRESS_ALERT_BODY,
    STRESS_ALERT_TITLE,
    STRESS_ALERT_TYPE,
    STRESS_WINDOW_DAYS,
    analyze_stress_patterns,
    reminder_settings,
    should_record_stress_alert,
    stress_alert,
)
from .models import (
    ROLE_ADMIN,
    ROLE_USER,
    EmotionRecord,
    EmotionReminder,
    Notification,
    Profile,
    ScheduleItem,
    User,
)
from .notifier import AdminNotifier, PushClient
from .outcomes import Outcome
from .risk_detector import detect_risk
from .risk_reports import create_risk_report, serialize_report
from .schedule import ITEM_TYPES, build_reminders, parse_hhmm
from .triage import triage_get, triage_list, triage_update

APP_VERSION = "1.0.0"
SECRET_KEY = os.getenv("PSICAPP_SECRET_KEY", "CHANGE_ME")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24

logger = logging.getLogger("psicapp.api")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

QUOTES = [
    "Cada día es una nueva oportunidad para crecer.",
    "Confía en tu proceso, los pequeños pasos también cuentan.",
    "Tu bienestar es tu mayor tesoro, cuídalo.",
    "Permítete sentir, aprender y avanzar.",
    "Hoy es un buen día para empezar de nuevo.",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=os.getenv("PSICAPP_LOG_LEVEL", "INFO").upper())
    Base.metadata.create_all(bind=engine)
    ensure_profile_columns()
    ensure_schedule_columns()
    logger.info("PsicApp API %s started (db: %s)", APP_VERSION, DB_PATH)
    yield


app = FastAPI(title="PsicApp API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class ProfileResponse(BaseModel):
    id: int
    email: str
    username: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: str
    has_push_token: bool


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    push_token: Optional[str] = None


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str
    history: List[ChatTurn] = []


class ChatRisk(BaseModel):
    is_at_risk: bool
    report_id: Optional[str] = None
    resources: List[str] = []


class ChatResponse(BaseModel):
    reply: str
    history: List[ChatTurn]
    risk: ChatRisk


class RiskReportUpdate(BaseModel):
    reviewed: bool
    notes: Optional[str] = None
    severity_level: Optional[Literal["low", "medium", "high"]] = None


class EmotionCreate(BaseModel):
    emotion: str
    intensity: int = Field(3, ge=1, le=5)
    note: Optional[str] = None
    recorded_at: Optional[datetime] = None


class EmotionResponse(BaseModel):
    id: int
    emotion: str
    intensity: int
    note: Optional[str] = None
    recorded_at: datetime


class EmotionReminderUpdate(BaseModel):
    enabled: bool
    hour: int = Field(20, ge=0, le=23)
    minute: int = Field(0, ge=0, le=59)


class SchedulePayload(BaseModel):
    title: str = Field(..., min_length=1)
    item_type: Literal["class", "break", "activity"] = "class"
    day: int = Field(..., ge=0, le=6)
    start_time: str
    end_time: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    notifications_enabled: bool = True
    before_minutes: int = Field(10, ge=0, le=24 * 60)
    include_wellness: bool = False


class ScheduleResponse(SchedulePayload):
    id: int


class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    related_id: Optional[str] = None
    related_type: Optional[str] = None
    read: bool
    created_at: datetime


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def resolve_user(token: Optional[str], db: Session) -> Optional[User]:
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("sub")
    if user_id is None:
        return None
    return db.query(User).filter(User.id == int(user_id)).first()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    user = resolve_user(token, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db)
) -> Optional[User]:
    return resolve_user(token, db)


def get_notifier() -> AdminNotifier:
    return AdminNotifier(SessionLocal, PushClient())


chat_assistant = ChatAssistant()


def get_chat_assistant() -> ChatAssistant:
    return chat_assistant


def raise_for_outcome(outcome: Outcome) -> None:
    if not outcome.success:
        raise HTTPException(status_code=outcome.http_status, detail=outcome.detail or outcome.error)


def is_dev_mode() -> bool:
    value = os.getenv("PSICAPP_DEV_MODE", "").strip().lower()
    alt = os.getenv("DEV_MODE", "").strip().lower()
    return value in {"1", "true", "yes", "on"} or alt in {"1", "true", "yes", "on"}


def admin_emails() -> set:
    raw = os.getenv("PSICAPP_ADMIN_EMAILS", "")
    return {item.strip().lower() for item in raw.split(",") if item.strip()}


def crisis_resources() -> List[str]:
    return [
        "Si sientes que estás en peligro, contacta de inmediato a los servicios de emergencia locales.",
        "Habla con una persona de confianza o con una línea de ayuda en crisis.",
        "No estás solo: un profesional de salud mental puede ayudarte.",
    ]


def pick_quote(exclude: Optional[str] = None, rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    candidates = [quote for quote in QUOTES if quote != exclude] or QUOTES
    return rng.choice(candidates)


def build_profile_response(user: User, profile: Profile) -> ProfileResponse:
    return ProfileResponse(
        id=user.id,
        email=user.email,
        username=profile.username,
        full_name=profile.full_name,
        avatar_url=profile.avatar_url,
        role=profile.role,
        has_push_token=bool(profile.push_token),
    )


def ensure_profile(user: User, db: Session) -> Profile:
    profile = db.query(Profile).filter(Profile.id == user.id).first()
    if profile is None:
        profile = Profile(id=user.id, username=user.email, role=ROLE_USER)
        db.add(profile)
        db.commit()
        db.refresh(profile)
    return profile


def record_stress_alert(user: User, db: Session, now: datetime) -> None:
    last_alert = (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.related_type == STRESS_ALERT_TYPE)
        .order_by(Notification.created_at.desc())
        .first()
    )
    if not should_record_stress_alert(last_alert.created_at if last_alert else None, now):
        return
    db.add(Notification(
        user_id=user.id,
        title=STRESS_ALERT_TITLE,
        message=STRESS_ALERT_BODY,
        related_type=STRESS_ALERT_TYPE,
        read=False,
        created_at=now,
    ))
    db.commit()
    logger.info("Stress pattern alert recorded for user %s", user.id)


def validate_schedule_times(payload: SchedulePayload) -> None:
    try:
        start = parse_hhmm(payload.start_time)
        end = parse_hhmm(payload.end_time) if payload.end_time else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if end is not None and end <= start:
        raise HTTPException(status_code=400, detail="end_time must be after start_time")


def schedule_response(item: ScheduleItem) -> ScheduleResponse:
    return ScheduleResponse(
        id=item.id,
        title=item.title,
        item_type=item.item_type,
        day=item.day,
        start_time=item.start_time,
        end_time=item.end_time,
        location=item.location,
        notes=item.notes,
        notifications_enabled=item.notifications_enabled,
        before_minutes=item.before_minutes,
        include_wellness=item.include_wellness,
    )


@app.get("/health")
def health() -> dict:
    db_status = "ok"
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception:
        db_status = "error"
    return {
        "status": "ok",
        "version": APP_VERSION,
        "db": db_status,
        "dev_mode": is_dev_mode(),
    }


@app.get("/meta")
def meta() -> dict:
    return {"version": APP_VERSION, "dev_mode": is_dev_mode(), "db_path": DB_PATH}


@app.get("/safety/resources")
def safety_resources() -> dict:
    return {
        "resources": crisis_resources(),
        "safety_note": "Esta aplicación no sustituye la atención de un profesional de la salud mental.",
    }


@app.post("/auth/register", response_model=TokenResponse)
def register_user(payload: RegisterRequest, db: Session = Depends(get_db)) -> TokenResponse:
    email = payload.email.strip().lower()
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    password_bytes = payload.password.encode("utf-8")
    if len(password_bytes) > 72:
        raise HTTPException(
            status_code=400,
            detail="Password too long (bcrypt limit is 72 bytes). Use a shorter password.",
        )
    try:
        hashed_password = get_password_hash(payload.password)
    except Exception as exc:
        raise HTTPException(
            status_code=500,
            detail="Unable to process password at this time.",
        ) from exc
    user = User(email=email, hashed_password=hashed_password)
    db.add(user)
    db.flush()
    name_parts = [part.strip() for part in (payload.first_name, payload.last_name) if part and part.strip()]
    role = ROLE_ADMIN if email in admin_emails() else ROLE_USER
    db.add(Profile(
        id=user.id,
        username=email,
        full_name=" ".join(name_parts) or None,
        role=role,
    ))
    db.commit()
    db.refresh(user)
    if role == ROLE_ADMIN:
        logger.info("Registered administrator account %s", user.id)
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return TokenResponse(access_token=token, token_type="bearer")


@app.post("/auth/login", response_model=TokenResponse)
def login_user(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
) -> TokenResponse:
    user = db.query(User).filter(User.email == form_data.username.strip().lower()).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Invalid email or password")
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return TokenResponse(access_token=token, token_type="bearer")


@app.get("/profile", response_model=ProfileResponse)
def get_profile(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ProfileResponse:
    return build_profile_response(user, ensure_profile(user, db))


@app.patch("/profile", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ProfileResponse:
    profile = ensure_profile(user, db)
    if payload.full_name is not None:
        profile.full_name = payload.full_name.strip() or None
    if payload.avatar_url is not None:
        profile.avatar_url = payload.avatar_url.strip() or None
    if payload.push_token is not None:
        profile.push_token = payload.push_token.strip() or None
    db.commit()
    db.refresh(profile)
    return build_profile_response(user, profile)


@app.post("/chat/messages", response_model=ChatResponse)
async def chat_message(
    payload: ChatRequest,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    notifier: AdminNotifier = Depends(get_notifier),
    assistant: ChatAssistant = Depends(get_chat_assistant),
) -> ChatResponse:
    message = payload.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    session = ChatSession(history=[turn.model_dump() for turn in payload.history])

    detection = detect_risk(message)
    risk = ChatRisk(is_at_risk=detection["is_at_risk"])
    if detection["is_at_risk"]:
        risk.resources = crisis_resources()
        created = await create_risk_report(
            db,
            user,
            message,
            detection["detected_keywords"],
            notifier=notifier,
        )
        if created.success:
            risk.report_id = created.data.id
        else:
            logger.warning("Risk detected in chat but no report was stored: %s", created.error)

    reply = await asyncio.to_thread(assistant.reply, session, message)
    return ChatResponse(
        reply=reply,
        history=[ChatTurn(**turn) for turn in session.history],
        risk=risk,
    )


@app.post("/chat/reset")
def chat_reset() -> dict:
    return {"reply": WELCOME_MESSAGE, "history": []}


@app.get("/quotes/random")
def random_quote(exclude: Optional[str] = Query(None)) -> dict:
    return {"quote": pick_quote(exclude)}


@app.get("/emotions/options")
def emotion_options() -> dict:
    return {"emotions": EMOTIONS, "intensity": {"min": 1, "max": 5}}


@app.post("/emotions", response_model=EmotionResponse)
def create_emotion_record(
    payload: EmotionCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> EmotionResponse:
    emotion = payload.emotion.strip().lower()
    if emotion not in EMOTIONS:
        raise HTTPException(status_code=400, detail=f"Unknown emotion '{payload.emotion}'")
    if payload.recorded_at and not is_dev_mode():
        raise HTTPException(status_code=403, detail="Developer mode disabled")
    record = EmotionRecord(
        user_id=user.id,
        emotion=emotion,
        intensity=payload.intensity,
        note=(payload.note or "").strip() or None,
        recorded_at=payload.recorded_at or datetime.utcnow(),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return EmotionResponse(
        id=record.id,
        emotion=record.emotion,
        intensity=record.intensity,
        note=record.note,
        recorded_at=record.recorded_at,
    )


@app.get("/emotions", response_model=List[EmotionResponse])
def list_emotion_records(
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> List[EmotionResponse]:
    start = datetime.utcnow() - timedelta(days=days)
    records = (
        db.query(EmotionRecord)
        .filter(EmotionRecord.user_id == user.id, EmotionRecord.recorded_at >= start)
        .order_by(EmotionRecord.recorded_at.desc())
        .limit(500)
        .all()
    )
    return [
        EmotionResponse(
            id=r.id,
            emotion=r.emotion,
            intensity=r.intensity,
            note=r.note,
            recorded_at=r.recorded_at,
        )
        for r in records
    ]


@app.delete("/emotions/{record_id}")
def delete_emotion_record(
    record_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    record = (
        db.query(EmotionRecord)
        .filter(EmotionRecord.id == record_id, EmotionRecord.user_id == user.id)
        .first()
    )
    if record is None:
        raise HTTPException(status_code=404, detail="Emotion record not found")
    db.delete(record)
    db.commit()
    return {"deleted": record_id}


@app.get("/emotions/stress-patterns")
def stress_patterns(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    now = datetime.utcnow()
    records = (
        db.query(EmotionRecord)
        .filter(
            EmotionRecord.user_id == user.id,
            EmotionRecord.recorded_at >= now - timedelta(days=STRESS_WINDOW_DAYS),
        )
        .all()
    )
    result = analyze_stress_patterns(records, now=now)
    alert = stress_alert(result)
    if alert is not None:
        record_stress_alert(user, db, now)
    payload = asdict(result)
    payload["alert"] = alert
    return payload


@app.get("/emotions/reminder")
def get_emotion_reminder(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    reminder = db.query(EmotionReminder).filter(EmotionReminder.user_id == user.id).first()
    return reminder_settings(reminder, datetime.now())


@app.put("/emotions/reminder")
def update_emotion_reminder(
    payload: EmotionReminderUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    reminder = db.query(EmotionReminder).filter(EmotionReminder.user_id == user.id).first()
    if reminder is None:
        reminder = EmotionReminder(user_id=user.id)
        db.add(reminder)
    reminder.enabled = payload.enabled
    reminder.hour = payload.hour
    reminder.minute = payload.minute
    reminder.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(reminder)
    return reminder_settings(reminder, datetime.now())


@app.get("/schedule", response_model=List[ScheduleResponse])
def list_schedule(
    day: Optional[int] = Query(None, ge=0, le=6),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> List[ScheduleResponse]:
    query = db.query(ScheduleItem).filter(ScheduleItem.user_id == user.id)
    if day is not None:
        query = query.filter(ScheduleItem.day == day)
    items = query.order_by(ScheduleItem.day, ScheduleItem.start_time).all()
    return [schedule_response(item) for item in items]


@app.post("/schedule", response_model=ScheduleResponse)
def create_schedule_item(
    payload: SchedulePayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ScheduleResponse:
    validate_schedule_times(payload)
    item = ScheduleItem(user_id=user.id, **payload.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)
    return schedule_response(item)


@app.put("/schedule/{item_id}", response_model=ScheduleResponse)
def update_schedule_item(
    item_id: int,
    payload: SchedulePayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ScheduleResponse:
    validate_schedule_times(payload)
    item = (
        db.query(ScheduleItem)
        .filter(ScheduleItem.id == item_id, ScheduleItem.user_id == user.id)
        .first()
    )
    if item is None:
        raise HTTPException(status_code=404, detail="Schedule item not found")
    for key, value in payload.model_dump().items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    return schedule_response(item)


@app.delete("/schedule/{item_id}")
def delete_schedule_item(
    item_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    item = (
        db.query(ScheduleItem)
        .filter(ScheduleItem.id == item_id, ScheduleItem.user_id == user.id)
        .first()
    )
    if item is None:
        raise HTTPException(status_code=404, detail="Schedule item not found")
    db.delete(item)
    db.commit()
    return {"deleted": item_id}


@app.get("/schedule/reminders")
def schedule_reminders(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    items = db.query(ScheduleItem).filter(ScheduleItem.user_id == user.id).all()
    return {"item_types": ITEM_TYPES, "reminders": build_reminders(items, datetime.now())}


@app.get("/notifications", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> List[NotificationResponse]:
    query = db.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    notifications = query.order_by(Notification.created_at.desc()).limit(100).all()
    return [
        NotificationResponse(
            id=n.id,
            title=n.title,
            message=n.message,
            related_id=n.related_id,
            related_type=n.related_type,
            read=n.read,
            created_at=n.created_at,
        )
        for n in notifications
    ]


@app.post("/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user.id)
        .first()
    )
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    notification.read = True
    db.commit()
    return {"id": notification_id, "read": True}


@app.get("/admin/risk-reports")
def admin_list_risk_reports(
    only_unreviewed: bool = Query(False),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    outcome = triage_list(db, user, only_unreviewed=only_unreviewed)
    raise_for_outcome(outcome)
    return {"reports": outcome.data, "warnings": outcome.warnings}


@app.get("/admin/risk-reports/{report_id}")
def admin_get_risk_report(
    report_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    outcome = triage_get(db, user, report_id)
    raise_for_outcome(outcome)
    return serialize_report(outcome.data)


@app.patch("/admin/risk-reports/{report_id}")
def admin_update_risk_report(
    report_id: str,
    payload: RiskReportUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    outcome = triage_update(
        db,
        user,
        report_id,
        reviewed=payload.reviewed,
        notes=payload.notes,
        severity_level=payload.severity_level,
    )
    raise_for_outcome(outcome)
    return serialize_report(outcome.data)
