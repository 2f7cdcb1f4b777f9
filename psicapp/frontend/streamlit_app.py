from datetime import date, datetime, time

import altair as alt
import pandas as pd
import requests
import streamlit as st

st.set_page_config(page_title="PsicApp", page_icon="🧠", layout="centered")

API_BASE = st.text_input("API base URL", value="http://127.0.0.1:8000")

DAY_LABELS = ["Domingo", "Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado"]
ITEM_TYPE_LABELS = {"class": "Clase", "break": "Descanso", "activity": "Actividad"}
SEVERITY_LABELS = {"low": "Baja", "medium": "Media", "high": "Alta"}

if "token" not in st.session_state:
    st.session_state.token = None
if "dev_mode" not in st.session_state:
    st.session_state.dev_mode = False
if "chat_history" not in st.session_state:
    st.session_state.chat_history = []
if "chat_welcome" not in st.session_state:
    st.session_state.chat_welcome = None
if "chat_risk" not in st.session_state:
    st.session_state.chat_risk = None
if "quote" not in st.session_state:
    st.session_state.quote = None
if "editing_item" not in st.session_state:
    st.session_state.editing_item = None


def api_headers() -> dict:
    if st.session_state.token:
        return {"Authorization": f"Bearer {st.session_state.token}"}
    return {}


def api_url(path: str) -> str:
    return f"{API_BASE}{path}"


def safe_json(resp: requests.Response):
    content_type = resp.headers.get("content-type", "")
    if "application/json" not in content_type:
        return None
    try:
        return resp.json()
    except ValueError:
        return None


def show_response_error(resp: requests.Response, path: str, fallback_message: str) -> None:
    url = api_url(path)
    payload = safe_json(resp)
    if payload and isinstance(payload, dict):
        detail = payload.get("detail", fallback_message)
        st.error(f"{fallback_message} ({resp.status_code}) | {url} | {detail}")
        return
    text = (resp.text or "").strip()
    snippet = text[:500] if text else "No response body."
    st.error(f"{fallback_message} ({resp.status_code}) | {url} | {snippet}")


def api_request(method: str, path: str, timeout: int = 10, **kwargs):
    try:
        return requests.request(method, api_url(path), headers=api_headers(), timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        st.error(f"Request failed: {exc}")
        return None


def api_get(path: str, params=None):
    return api_request("GET", path, params=params)


def api_post(path: str, json=None, data=None, timeout: int = 10):
    return api_request("POST", path, json=json, data=data, timeout=timeout)


def api_put(path: str, json=None):
    return api_request("PUT", path, json=json)


def api_patch(path: str, json=None):
    return api_request("PATCH", path, json=json)


def api_delete(path: str):
    return api_request("DELETE", path)


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def load_profile():
    resp = api_get("/profile")
    if resp is not None and resp.ok:
        return safe_json(resp) or {}
    return None


st.title("PsicApp")
st.caption("Esta aplicación no sustituye la atención de un profesional de la salud mental.")

st.subheader("Backend connection check")
health_resp = api_get("/health")
if health_resp is None:
    st.error("Backend check failed. Start backend with: uvicorn psicapp.backend.app.main:app --reload --port 8000")
elif health_resp.ok:
    payload = safe_json(health_resp) or {}
    st.session_state.dev_mode = bool(payload.get("dev_mode"))
    message = f"Backend healthy ({health_resp.status_code}) | {api_url('/health')}"
    if st.session_state.dev_mode:
        message += " | Dev mode enabled"
    st.success(message)
else:
    snippet = (health_resp.text or "").strip()
    st.error(
        f"Backend unhealthy ({health_resp.status_code}) | {api_url('/health')} | "
        f"{snippet[:500] if snippet else 'No response body.'}"
    )

profile = load_profile() if st.session_state.token else None
is_admin = bool(profile and profile.get("role") == "admin")

tab_labels = ["Cuenta", "Chat", "Emociones", "Horario", "Notificaciones"]
if is_admin:
    tab_labels.append("Administración")
tabs = st.tabs(tab_labels)
account_tab, chat_tab, emotions_tab, schedule_tab, notifications_tab = tabs[:5]

with account_tab:
    st.subheader("Registro")
    with st.form("register_form"):
        reg_first = st.text_input("Nombre", key="reg_first")
        reg_last = st.text_input("Apellido", key="reg_last")
        reg_email = st.text_input("Email", key="reg_email")
        reg_password = st.text_input("Contraseña", type="password", key="reg_password")
        if st.form_submit_button("Crear cuenta"):
            if not reg_email or not reg_password:
                st.warning("Ingresa un email y una contraseña.")
            else:
                resp = api_post(
                    "/auth/register",
                    json={
                        "email": reg_email,
                        "password": reg_password,
                        "first_name": reg_first,
                        "last_name": reg_last,
                    },
                )
                if resp is not None and resp.ok:
                    payload = safe_json(resp) or {}
                    st.session_state.token = payload.get("access_token")
                    st.success("Cuenta creada. Sesión iniciada.")
                    st.rerun()
                elif resp is not None:
                    show_response_error(resp, "/auth/register", "Registration failed.")

    st.subheader("Iniciar sesión")
    with st.form("login_form"):
        login_email = st.text_input("Email", key="login_email")
        login_password = st.text_input("Contraseña", type="password", key="login_password")
        if st.form_submit_button("Entrar"):
            if not login_email or not login_password:
                st.warning("Ingresa tu email y contraseña.")
            else:
                resp = api_post(
                    "/auth/login",
                    data={"username": login_email, "password": login_password},
                )
                if resp is not None and resp.ok:
                    payload = safe_json(resp) or {}
                    st.session_state.token = payload.get("access_token")
                    st.success("Sesión iniciada.")
                    st.rerun()
                elif resp is not None:
                    show_response_error(resp, "/auth/login", "Login failed.")

    if profile:
        st.subheader("Perfil")
        st.write(f"**{profile.get('full_name') or profile.get('username')}** ({profile.get('role')})")
        with st.form("profile_form"):
            full_name = st.text_input("Nombre completo", value=profile.get("full_name") or "")
            avatar_url = st.text_input("URL del avatar", value=profile.get("avatar_url") or "")
            push_token = st.text_input(
                "Token de notificaciones push",
                help="Token de Expo del dispositivo móvil.",
            )
            if st.form_submit_button("Guardar perfil"):
                update = {"full_name": full_name, "avatar_url": avatar_url}
                if push_token.strip():
                    update["push_token"] = push_token
                resp = api_patch("/profile", json=update)
                if resp is not None and resp.ok:
                    st.success("Perfil actualizado.")
                elif resp is not None:
                    show_response_error(resp, "/profile", "Unable to update profile.")
        if profile.get("has_push_token"):
            st.caption("Notificaciones push activadas en este dispositivo.")
        if st.button("Cerrar sesión"):
            st.session_state.token = None
            st.session_state.chat_history = []
            st.rerun()

    st.subheader("Frase del día")
    if st.session_state.quote is None or st.button("Otra frase"):
        resp = api_get("/quotes/random", params={"exclude": st.session_state.quote})
        if resp is not None and resp.ok:
            st.session_state.quote = (safe_json(resp) or {}).get("quote")
    if st.session_state.quote:
        st.info(st.session_state.quote)

with chat_tab:
    st.subheader("Asistente psicológico")
    if not st.session_state.token:
        st.caption("Puedes conversar sin cuenta, pero las alertas al equipo de apoyo requieren iniciar sesión.")
    if st.session_state.chat_welcome is None:
        resp = api_post("/chat/reset")
        if resp is not None and resp.ok:
            st.session_state.chat_welcome = (safe_json(resp) or {}).get("reply")

    if st.session_state.chat_welcome:
        with st.chat_message("assistant"):
            st.write(st.session_state.chat_welcome)
    for turn in st.session_state.chat_history:
        with st.chat_message(turn["role"]):
            st.write(turn["content"])

    risk = st.session_state.chat_risk
    if risk and risk.get("is_at_risk"):
        st.error("Parece que estás pasando por un momento difícil.")
        for item in risk.get("resources", []):
            st.write(f"- {item}")

    prompt = st.chat_input("Escribe tu mensaje")
    if prompt:
        resp = api_post(
            "/chat/messages",
            json={"message": prompt, "history": st.session_state.chat_history},
            timeout=60,
        )
        if resp is not None and resp.ok:
            payload = safe_json(resp) or {}
            st.session_state.chat_history = payload.get("history", [])
            st.session_state.chat_risk = payload.get("risk")
            st.rerun()
        elif resp is not None:
            show_response_error(resp, "/chat/messages", "Unable to send message.")

    if st.button("Nueva conversación"):
        st.session_state.chat_history = []
        st.session_state.chat_risk = None
        st.session_state.chat_welcome = None
        st.rerun()

with emotions_tab:
    st.subheader("Registro emocional")
    if not st.session_state.token:
        st.warning("Inicia sesión en la pestaña Cuenta para continuar.")
    else:
        options_resp = api_get("/emotions/options")
        options = (safe_json(options_resp) or {}) if options_resp is not None and options_resp.ok else {}
        emotions = options.get("emotions", [])
        with st.form("emotion_form"):
            emotion = st.selectbox("¿Cómo te sientes?", emotions)
            intensity = st.slider("Intensidad", 1, 5, 3)
            note = st.text_area("Nota (opcional)", height=80)
            recorded_at = None
            if st.session_state.dev_mode:
                st.caption("Dev mode: date controls enabled.")
                recorded_day = st.date_input("Fecha", value=date.today())
                recorded_at = datetime.combine(recorded_day, datetime.now().time()).isoformat()
            if st.form_submit_button("Guardar"):
                payload = {"emotion": emotion, "intensity": intensity, "note": note}
                if recorded_at:
                    payload["recorded_at"] = recorded_at
                resp = api_post("/emotions", json=payload)
                if resp is not None and resp.ok:
                    st.success("Emoción registrada.")
                elif resp is not None:
                    show_response_error(resp, "/emotions", "Unable to save emotion.")

        days = st.selectbox("Días", [7, 30, 90], index=1)
        records_resp = api_get("/emotions", params={"days": days})
        if records_resp is not None and records_resp.ok:
            records = safe_json(records_resp) or []
            if not records:
                st.info("Todavía no hay registros.")
            else:
                records_df = pd.DataFrame(records)
                records_df["recorded_at"] = pd.to_datetime(records_df["recorded_at"])
                chart = alt.Chart(records_df).mark_circle(size=80).encode(
                    x=alt.X("recorded_at:T", title="Fecha"),
                    y=alt.Y("intensity:Q", title="Intensidad", scale=alt.Scale(domain=[0, 5])),
                    color=alt.Color("emotion:N", title="Emoción"),
                    tooltip=["recorded_at:T", "emotion:N", "intensity:Q", "note:N"],
                )
                st.altair_chart(chart, use_container_width=True)
                for record in records[:10]:
                    cols = st.columns([4, 1])
                    note_text = f" | {record['note']}" if record.get("note") else ""
                    cols[0].write(
                        f"{record['recorded_at'][:16]} | {record['emotion']} ({record['intensity']}){note_text}"
                    )
                    if cols[1].button("Borrar", key=f"del_emotion_{record['id']}"):
                        resp = api_delete(f"/emotions/{record['id']}")
                        if resp is not None and resp.ok:
                            st.rerun()
                        elif resp is not None:
                            show_response_error(resp, "/emotions", "Unable to delete record.")
        elif records_resp is not None:
            show_response_error(records_resp, "/emotions", "Unable to load emotions.")

        st.subheader("Patrones de estrés")
        pattern_resp = api_get("/emotions/stress-patterns")
        if pattern_resp is not None and pattern_resp.ok:
            pattern = safe_json(pattern_resp) or {}
            st.metric("Registros de estrés (7 días)", pattern.get("weekly_stress_count", 0))
            alert = pattern.get("alert")
            if alert:
                st.warning(f"**{alert['title']}** {alert['body']}")
                days_df = pd.DataFrame(
                    [{"día": day, "registros": count} for day, count in pattern.get("stressful_days", {}).items()]
                )
                if not days_df.empty:
                    st.altair_chart(
                        alt.Chart(days_df).mark_bar().encode(x="día:N", y="registros:Q"),
                        use_container_width=True,
                    )
                st.write("Estrategias sugeridas:")
                for strategy in pattern.get("strategies", []):
                    st.write(f"- {strategy}")
        elif pattern_resp is not None:
            show_response_error(pattern_resp, "/emotions/stress-patterns", "Unable to load stress patterns.")

        st.subheader("Recordatorio diario")
        reminder_resp = api_get("/emotions/reminder")
        if reminder_resp is not None and reminder_resp.ok:
            reminder = safe_json(reminder_resp) or {}
            with st.form("emotion_reminder_form"):
                reminder_enabled = st.checkbox("Recordarme registrar mis emociones", value=reminder.get("enabled", False))
                reminder_time = st.time_input(
                    "Hora del recordatorio",
                    value=time(reminder.get("hour", 20), reminder.get("minute", 0)),
                )
                if st.form_submit_button("Guardar recordatorio"):
                    resp = api_put(
                        "/emotions/reminder",
                        json={
                            "enabled": reminder_enabled,
                            "hour": reminder_time.hour,
                            "minute": reminder_time.minute,
                        },
                    )
                    if resp is not None and resp.ok:
                        st.success("Recordatorio guardado.")
                        st.rerun()
                    elif resp is not None:
                        show_response_error(resp, "/emotions/reminder", "Unable to save reminder.")
            next_reminder = reminder.get("next_reminder")
            if next_reminder:
                st.caption(f"Próximo recordatorio: {next_reminder['fire_at'][:16].replace('T', ' ')}")
        elif reminder_resp is not None:
            show_response_error(reminder_resp, "/emotions/reminder", "Unable to load reminder settings.")

with schedule_tab:
    st.subheader("Horario semanal")
    if not st.session_state.token:
        st.warning("Inicia sesión en la pestaña Cuenta para continuar.")
    else:
        editing = st.session_state.editing_item or {}
        form_title = "Editar actividad" if editing else "Nueva actividad"
        with st.form("schedule_form"):
            st.write(form_title)
            title = st.text_input("Título", value=editing.get("title", ""))
            item_types = list(ITEM_TYPE_LABELS.keys())
            item_type = st.selectbox(
                "Tipo",
                item_types,
                index=item_types.index(editing.get("item_type", "class")),
                format_func=ITEM_TYPE_LABELS.get,
            )
            day = st.selectbox(
                "Día",
                list(range(7)),
                index=editing.get("day", 1),
                format_func=lambda value: DAY_LABELS[value],
            )
            start = st.time_input("Inicio", value=parse_hhmm(editing.get("start_time", "08:00")))
            end = st.time_input("Fin", value=parse_hhmm(editing.get("end_time") or "09:00"))
            location = st.text_input("Lugar", value=editing.get("location") or "")
            notes = st.text_area("Notas", value=editing.get("notes") or "", height=80)
            notifications_enabled = st.checkbox(
                "Recordatorio", value=editing.get("notifications_enabled", True)
            )
            before_minutes = st.number_input(
                "Minutos antes", min_value=0, max_value=1440, value=editing.get("before_minutes", 10)
            )
            include_wellness = st.checkbox(
                "Incluir consejo de bienestar", value=editing.get("include_wellness", False)
            )
            if st.form_submit_button("Guardar actividad"):
                payload = {
                    "title": title,
                    "item_type": item_type,
                    "day": day,
                    "start_time": start.strftime("%H:%M"),
                    "end_time": end.strftime("%H:%M"),
                    "location": location or None,
                    "notes": notes or None,
                    "notifications_enabled": notifications_enabled,
                    "before_minutes": int(before_minutes),
                    "include_wellness": include_wellness,
                }
                if editing:
                    resp = api_put(f"/schedule/{editing['id']}", json=payload)
                else:
                    resp = api_post("/schedule", json=payload)
                if resp is not None and resp.ok:
                    st.session_state.editing_item = None
                    st.success("Actividad guardada.")
                    st.rerun()
                elif resp is not None:
                    show_response_error(resp, "/schedule", "Unable to save schedule item.")
        if editing and st.button("Cancelar edición"):
            st.session_state.editing_item = None
            st.rerun()

        items_resp = api_get("/schedule")
        if items_resp is not None and items_resp.ok:
            items = safe_json(items_resp) or []
            if not items:
                st.info("No hay actividades en tu horario.")
            for item in items:
                cols = st.columns([4, 1, 1])
                end_text = f"-{item['end_time']}" if item.get("end_time") else ""
                cols[0].write(
                    f"**{DAY_LABELS[item['day']]}** {item['start_time']}{end_text} | "
                    f"{item['title']} ({ITEM_TYPE_LABELS.get(item['item_type'], item['item_type'])})"
                )
                if cols[1].button("Editar", key=f"edit_item_{item['id']}"):
                    st.session_state.editing_item = item
                    st.rerun()
                if cols[2].button("Borrar", key=f"del_item_{item['id']}"):
                    resp = api_delete(f"/schedule/{item['id']}")
                    if resp is not None and resp.ok:
                        st.rerun()
                    elif resp is not None:
                        show_response_error(resp, "/schedule", "Unable to delete schedule item.")
        elif items_resp is not None:
            show_response_error(items_resp, "/schedule", "Unable to load schedule.")

        st.subheader("Próximos recordatorios")
        reminders_resp = api_get("/schedule/reminders")
        if reminders_resp is not None and reminders_resp.ok:
            reminders = (safe_json(reminders_resp) or {}).get("reminders", [])
            if not reminders:
                st.info("No hay recordatorios programados.")
            for reminder in reminders[:5]:
                st.write(f"{reminder['fire_at'][:16]} | {reminder['title']}")
                st.caption(reminder["body"])
        elif reminders_resp is not None:
            show_response_error(reminders_resp, "/schedule/reminders", "Unable to load reminders.")

with notifications_tab:
    st.subheader("Notificaciones")
    if not st.session_state.token:
        st.warning("Inicia sesión en la pestaña Cuenta para continuar.")
    else:
        unread_only = st.checkbox("Solo no leídas", value=False)
        notifications_resp = api_get("/notifications", params={"unread_only": unread_only})
        if notifications_resp is not None and notifications_resp.ok:
            notifications = safe_json(notifications_resp) or []
            if not notifications:
                st.info("No tienes notificaciones.")
            for notification in notifications:
                marker = "" if notification["read"] else "🔵 "
                st.markdown(f"{marker}**{notification['title']}**")
                st.write(notification["message"])
                st.caption(notification["created_at"][:16])
                if not notification["read"] and st.button(
                    "Marcar como leída", key=f"read_{notification['id']}"
                ):
                    resp = api_post(f"/notifications/{notification['id']}/read")
                    if resp is not None and resp.ok:
                        st.rerun()
                    elif resp is not None:
                        show_response_error(resp, "/notifications", "Unable to update notification.")
                st.divider()
        elif notifications_resp is not None:
            show_response_error(notifications_resp, "/notifications", "Unable to load notifications.")

if is_admin:
    with tabs[5]:
        st.subheader("Reportes de riesgo")
        only_unreviewed = st.checkbox("Solo pendientes de revisión", value=True)
        reports_resp = api_get("/admin/risk-reports", params={"only_unreviewed": only_unreviewed})
        if reports_resp is not None and reports_resp.ok:
            payload = safe_json(reports_resp) or {}
            for warning in payload.get("warnings", []):
                st.warning(warning)
            reports = payload.get("reports", [])
            if not reports:
                st.info("No hay reportes.")
            for report in reports:
                user_profile = report.get("profile") or {}
                who = user_profile.get("full_name") or user_profile.get("username") or "Usuario desconocido"
                severity = report.get("severity_level")
                status_label = "Revisado" if report.get("reviewed") else "Pendiente"
                header = f"{report['timestamp'][:16]} | {who} | {status_label}"
                if severity:
                    header += f" | Severidad {SEVERITY_LABELS.get(severity, severity)}"
                with st.expander(header):
                    st.write(report["message_content"])
                    st.write("Palabras detectadas:", ", ".join(report.get("detected_keywords", [])))
                    with st.form(f"review_{report['id']}"):
                        severity_options = ["", "low", "medium", "high"]
                        chosen = st.radio(
                            "Severidad",
                            severity_options,
                            index=severity_options.index(severity or ""),
                            format_func=lambda value: SEVERITY_LABELS.get(value, "Sin asignar"),
                            horizontal=True,
                        )
                        notes = st.text_area("Notas", value=report.get("notes") or "", height=80)
                        reviewed = st.checkbox("Revisado", value=bool(report.get("reviewed")))
                        if st.form_submit_button("Guardar revisión"):
                            update = {"reviewed": reviewed, "notes": notes}
                            if chosen:
                                update["severity_level"] = chosen
                            resp = api_patch(f"/admin/risk-reports/{report['id']}", json=update)
                            if resp is not None and resp.ok:
                                st.success("Reporte actualizado.")
                                st.rerun()
                            elif resp is not None:
                                show_response_error(resp, "/admin/risk-reports", "Unable to update report.")
        elif reports_resp is not None:
            show_response_error(reports_resp, "/admin/risk-reports", "Unable to load risk reports.")

st.caption("Esta aplicación no sustituye la atención de un profesional de la salud mental.")
