from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple


class Vertical(str, Enum):
    WEBDEV = "webdev"
    TECH = "tech"
    AI = "ai"
    PRODUCT = "product"
    DATA = "data"
    DEVOPS = "devops"
    SECURITY = "security"
    DESIGN = "design"
    CRYPTO = "crypto"
    FOUNDERS = "founders"


DEFAULT_VERTICAL = Vertical.WEBDEV

# Upstream newsletter keys as they appear in the hydration payload.
_NEWSLETTER_KEYS: Dict[Vertical, Tuple[str, ...]] = {
    Vertical.WEBDEV: ("dev", "webdev"),
    Vertical.SECURITY: ("infosec",),
}


def newsletter_keys(vertical: Vertical) -> Tuple[str, ...]:
    return _NEWSLETTER_KEYS.get(vertical, (vertical.value,))


def parse_vertical(value: str | None) -> Vertical | None:
    """Return the Vertical for a raw query value, or None when unknown."""
    raw = (value or "").strip().lower()
    if not raw:
        return DEFAULT_VERTICAL
    try:
        return Vertical(raw)
    except ValueError:
        return None
