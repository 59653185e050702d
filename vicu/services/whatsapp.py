"""Pure helpers for the WhatsApp reply loop: numbers, signatures, payloads and copy."""
from __future__ import annotations

import hashlib
import hmac
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Sequence

from vicu.core.config import settings

logger = logging.getLogger(__name__)

ReplyAction = Literal["done", "later", "stuck"]
AssignmentNoticeReason = Literal["no_response", "expired"]

# Longer codes first so "1809" wins over "1".
KNOWN_CALLING_CODES = (
    "1809", "1787",
    "593", "591", "595", "598", "507", "506", "502", "503", "504", "505", "351",
    "51", "57", "52", "54", "56", "55", "58", "34", "44", "33", "49", "39",
    "1",
)

DONE_KEYWORDS = ("hecho", "listo", "termine", "terminé", "hice", "done", "si", "sí")
LATER_KEYWORDS = ("tarde", "despues", "después", "luego", "later", "mañana")
STUCK_KEYWORDS = ("trabé", "trabe", "stuck", "ayuda", "help", "no puedo", "dificil", "difícil", "otra")
GREETINGS = ("hola", "activar")

ONBOARDING_MESSAGE = (
    "¡Hola! 👋\n\n"
    "Para recibir recordatorios, primero activa WhatsApp desde Vicu:\n\n"
    "1. Entra a vicu.vercel.app\n"
    "2. Toca el ícono de WhatsApp\n"
    "3. Ingresa tu número\n\n"
    "¡Te esperamos! 🚀"
)
NO_GOALS_MESSAGE = "No tienes objetivos activos. ¿Qué quieres lograr? Entra a vicu.vercel.app"
RECEIVED_MESSAGE = "👍 Recibido. Te escribo en el próximo recordatorio."
LATER_REPLY = "👍 Te recuerdo mañana temprano."


class InvalidPhoneNumber(ValueError):
    pass


@dataclass(frozen=True)
class InboundMessage:
    sender: str
    text: str


@dataclass(frozen=True)
class ActionableGoal:
    title: str
    action_text: str
    days_without_progress: int
    streak_days: int


def normalize_phone_number(raw: Optional[str], default_country_code: Optional[str] = None) -> str:
    """
    Normalize a user-entered number to ``+<code><number>``.

    Numbers starting with a known calling code keep it. Other numbers without a plus
    get the default country code with leading zeros dropped.
    """
    phone = re.sub(r"\s+", "", raw or "")
    if not phone:
        raise InvalidPhoneNumber("Número de teléfono requerido")
    digits = phone[1:] if phone.startswith("+") else phone
    if not digits:
        raise InvalidPhoneNumber("Número de teléfono requerido")

    if any(digits.startswith(code) for code in KNOWN_CALLING_CODES):
        return f"+{digits}"
    if phone.startswith("+"):
        return phone
    country_code = default_country_code or settings.default_phone_country_code
    return f"+{country_code}{digits.lstrip('0')}"


def phone_lookup_candidates(sender: str) -> Sequence[str]:
    cleaned = re.sub(r"[\s\-+]", "", sender)
    return (cleaned, f"+{cleaned}")


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: Optional[str] = None) -> bool:
    """HMAC-SHA256 hex digest of the raw body; verification is skipped when no secret is set."""
    secret = secret if secret is not None else settings.kapso_webhook_secret
    if not secret:
        logger.warning("Webhook secret not configured; skipping signature verification")
        return True
    if not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature.strip(), expected)


def parse_user_response(text: str) -> ReplyAction:
    """Numeric prefix first (1/2/3), then Spanish keywords; anything else means later."""
    lowered = (text or "").strip().lower()
    if lowered.startswith("1"):
        return "done"
    if lowered.startswith("2"):
        return "later"
    if lowered.startswith("3"):
        return "stuck"

    if lowered in ("ok", "ya") or any(_has_word(lowered, keyword) for keyword in DONE_KEYWORDS):
        return "done"
    if any(keyword in lowered for keyword in LATER_KEYWORDS):
        return "later"
    if any(keyword in lowered for keyword in STUCK_KEYWORDS):
        return "stuck"
    return "later"


def is_greeting(text: str) -> bool:
    lowered = (text or "").strip().lower()
    return lowered in ("hi", "hello") or any(greeting in lowered for greeting in GREETINGS)


def extract_inbound_message(payload: Any) -> Optional[InboundMessage]:
    """Find sender and text in a Kapso event, a Meta webhook or a bare ``{from, text}`` body."""
    if not isinstance(payload, dict):
        return None

    data = payload.get("data")
    if payload.get("event") and isinstance(data, dict):
        contact_id = (data.get("contact") or {}).get("wa_id") if isinstance(data.get("contact"), dict) else None
        message = data.get("message")
        if isinstance(message, dict):
            found = _message_fields(message, fallback_sender=contact_id)
            if found:
                return found
        found = _message_fields(data, fallback_sender=contact_id)
        if found:
            return found

    for entry in payload.get("entry") or []:
        for change in (entry or {}).get("changes") or []:
            for message in ((change or {}).get("value") or {}).get("messages") or []:
                found = _message_fields(message)
                if found:
                    return found

    if payload.get("from"):
        found = _message_fields(payload)
        if found:
            return found

    message = payload.get("message")
    if isinstance(message, dict):
        return _message_fields(message)
    return None


def build_reminder_message(goal_title: str, step_title: str, step_description: Optional[str] = None) -> str:
    message = f"🎯 *{goal_title}*\n\nTu siguiente paso:\n📌 {step_title}\n"
    if step_description:
        message += f"\n{step_description}\n"
    message += "\n---\nResponde:\n1️⃣ Ya lo hice\n2️⃣ Más tarde\n3️⃣ Me trabé"
    return message


def urgency_hint(days_without_progress: int, streak_days: int) -> Optional[str]:
    if 7 <= days_without_progress < 900:
        return f"{days_without_progress} días pausado"
    if 3 <= days_without_progress < 7:
        return "hace unos días"
    if streak_days >= 3:
        return f"racha {streak_days}d"
    return None


def build_actionable_message(goal: Optional[ActionableGoal], user_name: Optional[str] = None) -> str:
    """Single-line task prompt for the most urgent goal."""
    if goal is None:
        return NO_GOALS_MESSAGE
    hint = urgency_hint(goal.days_without_progress, goal.streak_days)
    suffix = f" - {hint}" if hint else ""
    greeting = f"{user_name}, " if user_name else ""
    return f"{greeting}{goal.title}{suffix}. Hoy: {goal.action_text}. Responde 1=Listo, 2=Mañana, 3=Otra"


def build_assignment_message(
    helper_name: str,
    owner_name: str,
    step_title: str,
    public_url: str,
    custom_message: Optional[str] = None,
) -> str:
    message = f"¡Hola {helper_name}! 👋\n\n{owner_name} te pidió ayuda con:\n📌 {step_title}\n"
    if custom_message:
        message += f"\n💬 \"{custom_message}\"\n"
    message += f"\nMira los detalles y responde aquí:\n{public_url}"
    return message


def build_assignment_reminder(
    helper_name: str,
    owner_name: str,
    step_title: str,
    public_url: str,
    reminder_number: int,
) -> str:
    if reminder_number >= 2:
        opener = f"Hola {helper_name}, último recordatorio 🙏"
    else:
        opener = f"Hola {helper_name} 👋 Un recordatorio amable"
    return (
        f"{opener}\n\n{owner_name} sigue esperando tu ayuda con:\n📌 {step_title}\n\n"
        f"¿Pudiste hacerlo? Responde aquí:\n{public_url}"
    )


def build_owner_assignment_notice(helper_name: str, step_title: str, reason: AssignmentNoticeReason) -> str:
    if reason == "expired":
        return (
            f"⌛ La solicitud a {helper_name} para \"{step_title}\" expiró sin respuesta.\n\n"
            "Puedes hacerlo tú o pedírselo a otra persona desde Vicu."
        )
    return (
        f"🤔 {helper_name} aún no responde sobre \"{step_title}\".\n\n"
        "¿Quieres buscar a alguien más o hacerlo tú?"
    )


def build_done_reply(streak: int) -> str:
    plural = "s" if streak > 1 else ""
    return f"✅ ¡Hecho! Paso registrado.\n🔥 Racha: {streak} día{plural}\n\nMañana seguimos 💪"


def build_alternative_reply(alternative: str) -> str:
    return f"Ok, ¿qué tal esto?\n→ {alternative}\n\n1️⃣ Listo\n2️⃣ Mañana"


def _has_word(text: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", text) is not None


def _message_fields(message: Dict[str, Any], fallback_sender: Optional[str] = None) -> Optional[InboundMessage]:
    sender = message.get("from") or fallback_sender or ""
    text_field = message.get("text")
    if isinstance(text_field, dict):
        text = text_field.get("body") or ""
    else:
        text = text_field or message.get("body") or ""
    if sender and isinstance(text, str) and text.strip():
        return InboundMessage(sender=str(sender), text=text)
    return None
