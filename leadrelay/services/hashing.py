"""PII normalization and SHA-256 hashing for Conversions API user data.

Every helper degrades to an empty string instead of raising: a missing hash
lowers match quality but must never block an event from being sent.
"""
import hashlib
import re
import unicodedata
from typing import Any
import structlog
from ..config import get_settings

log = structlog.get_logger()

_NON_DIGITS = re.compile(r"\D")

# Raw form keys that are replaced by their hashed counterparts
RAW_PII_KEYS = (
    "email", "phone", "telefone", "name", "nome",
    "city", "cidade", "state", "estado", "zip", "cep",
    "customer_id", "user_id", "country_code", "countryCode",
)


def hash_data(value: Any) -> str:
    """SHA-256 hex digest of the trimmed, lower-cased value ("" when empty)."""
    if not value or not isinstance(value, str):
        return ""
    try:
        return hashlib.sha256(value.strip().lower().encode("utf-8")).hexdigest()
    except Exception as e:
        log.warning("hashing.failed", error=str(e))
        return ""


def normalize_and_hash_email(email: Any) -> str:
    if not email or not isinstance(email, str):
        return ""
    return hash_data(email.strip().lower())


def normalize_and_hash_phone(phone: Any, country_code: str | None = None) -> str:
    """Keep digits only and prefix the country code when it is missing."""
    if not phone or not isinstance(phone, str):
        return ""
    code = country_code or get_settings().DEFAULT_COUNTRY_CODE
    digits = _NON_DIGITS.sub("", phone)
    if not digits:
        return ""
    if not digits.startswith(code):
        digits = f"{code}{digits}"
    return hash_data(digits)


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_and_hash_name(name: Any) -> str:
    if not name or not isinstance(name, str):
        return ""
    return hash_data(strip_accents(name.strip().lower()))


def split_name(full_name: str) -> tuple[str, str]:
    """Split on the first space: ("Maria", "da Silva") for "Maria da Silva"."""
    first, _, last = full_name.strip().partition(" ")
    return first, last.strip()


def prepare_user_data(form: dict[str, Any]) -> dict[str, Any]:
    """
    Build Conversions API ``user_data`` from raw form fields.

    Already hashed keys (em, ph, fn, ln, ...) pass through untouched unless a
    raw value is present to re-derive them from. Raw PII keys are dropped.

    Args:
        form: Raw user data as posted by the browser or a form

    Returns:
        user_data safe to forward to Meta
    """
    user_data = {k: v for k, v in form.items() if k not in RAW_PII_KEYS}

    email = form.get("email")
    if email:
        user_data["em"] = normalize_and_hash_email(email)

    phone = form.get("phone") or form.get("telefone")
    if phone:
        country_code = form.get("country_code") or form.get("countryCode")
        user_data["ph"] = normalize_and_hash_phone(phone, country_code)

    full_name = form.get("name") or form.get("nome")
    if full_name and isinstance(full_name, str):
        first, last = split_name(full_name)
        user_data["fn"] = normalize_and_hash_name(first)
        if last:
            user_data["ln"] = normalize_and_hash_name(last)

    city = form.get("city") or form.get("cidade")
    if city:
        user_data["ct"] = hash_data(strip_accents(str(city)).replace(" ", ""))

    state = form.get("state") or form.get("estado")
    if state:
        user_data["st"] = hash_data(str(state))

    zip_code = form.get("zip") or form.get("cep")
    if zip_code:
        user_data["zp"] = hash_data(_NON_DIGITS.sub("", str(zip_code)))

    external_id = form.get("customer_id") or form.get("user_id")
    if external_id and not user_data.get("external_id"):
        user_data["external_id"] = hash_data(str(external_id))

    return user_data
