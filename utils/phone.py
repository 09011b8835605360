import re
from typing import Iterable, List, Optional

_NON_DIGITS = re.compile(r"\D")

def normalize_phone_number(phone: Optional[str]) -> str:
    """Strip every non-numeric character from a phone number"""
    if not phone:
        return ""
    return _NON_DIGITS.sub("", phone)

def normalize_phone_numbers(phones: Iterable[Optional[str]]) -> List[str]:
    """Normalize and de-duplicate phone numbers, keeping first-seen order"""
    seen = set()
    result = []
    for phone in phones:
        normalized = normalize_phone_number(phone)
        if normalized and normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result
