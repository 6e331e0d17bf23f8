import re
from typing import List, Optional

from app.config import settings

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Strip formatting and prefix the default country code onto 10-digit numbers."""
    if phone is None:
        return None
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) == 10:
        digits = settings.DEFAULT_COUNTRY_CODE + digits
    return digits


def phone_lookup_candidates(phone: str) -> List[str]:
    """Stored formats a phone number may have been saved under, most likely first."""
    digits = _NON_DIGITS.sub("", phone or "")
    code = settings.DEFAULT_COUNTRY_CODE
    candidates = [normalize_phone(digits), digits]
    if len(digits) == 10 + len(code) and digits.startswith(code):
        candidates.append(digits[len(code):])
    return list(dict.fromkeys(candidates))


def mask_phone(phone: Optional[str]) -> str:
    if not phone or len(phone) < 4:
        return "****"
    return "****" + phone[-4:]
