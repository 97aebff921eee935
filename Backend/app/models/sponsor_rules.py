"""
Sponsor rules loader.

Parses configs/sponsor_rules.yml into a SponsorRules object. The CTA phrase
list and the two-level public suffix list are data, not code: extend the YAML
file to teach the classifier new phrases or ccTLDs.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Tuple

import yaml

from app.config import settings
from app.core.logging import get_logger

logger = get_logger().bind(module="sponsor_rules")

DEFAULT_CTA_PHRASES: Tuple[str, ...] = (
    "learn more",
    "get started",
    "sign up",
    "try it",
    "try now",
    "start free",
    "book a demo",
    "book demo",
    "free trial",
    "download",
    "read more",
    "limited time",
)

DEFAULT_OPTIONAL_CTA_PHRASES: Tuple[str, ...] = (
    "register now",
    "join now",
    "subscribe",
    "claim your",
    "get your",
)

DEFAULT_TWO_LEVEL_SUFFIXES: FrozenSet[str] = frozenset(
    {
        "co.uk", "ac.uk", "gov.uk", "org.uk", "ltd.uk", "plc.uk",
        "com.au", "net.au", "org.au", "com.br", "com.mx", "com.ar", "com.tr", "com.pl",
        "com.cn", "com.hk", "com.sg", "com.tw", "co.jp", "ne.jp", "or.jp", "co.kr",
        "com.sa", "co.in", "com.co", "com.ng", "com.ph", "com.my", "com.vn", "com.pe",
    }
)

DEFAULT_EXTENSION_WINDOW = 5


@dataclass(frozen=True)
class SponsorRules:
    cta_phrases: Tuple[str, ...] = DEFAULT_CTA_PHRASES
    optional_cta_phrases: Tuple[str, ...] = DEFAULT_OPTIONAL_CTA_PHRASES
    include_optional_cta: bool = True
    two_level_suffixes: FrozenSet[str] = DEFAULT_TWO_LEVEL_SUFFIXES
    extension_window: int = DEFAULT_EXTENSION_WINDOW

    @property
    def active_cta_phrases(self) -> Tuple[str, ...]:
        if self.include_optional_cta:
            return self.cta_phrases + self.optional_cta_phrases
        return self.cta_phrases


def _phrase_tuple(value: Any, fallback: Tuple[str, ...], *, field: str) -> Tuple[str, ...]:
    if value is None:
        return fallback
    if not isinstance(value, list):
        logger.warning("sponsor_rules_invalid_list", field=field, value_type=type(value).__name__)
        return fallback
    phrases = tuple(str(v).strip().lower() for v in value if str(v).strip())
    return phrases or fallback


def _parse_rules(data: Dict[str, Any]) -> SponsorRules:
    suffixes = _phrase_tuple(
        data.get("two_level_suffixes"),
        tuple(sorted(DEFAULT_TWO_LEVEL_SUFFIXES)),
        field="two_level_suffixes",
    )

    window_raw = data.get("extension_window", DEFAULT_EXTENSION_WINDOW)
    try:
        window = max(0, int(window_raw))
    except (TypeError, ValueError):
        logger.warning("sponsor_rules_invalid_extension_window", value=window_raw)
        window = DEFAULT_EXTENSION_WINDOW

    include_optional = data.get("include_optional_cta", True)
    return SponsorRules(
        cta_phrases=_phrase_tuple(data.get("cta_phrases"), DEFAULT_CTA_PHRASES, field="cta_phrases"),
        optional_cta_phrases=_phrase_tuple(
            data.get("optional_cta_phrases"),
            DEFAULT_OPTIONAL_CTA_PHRASES,
            field="optional_cta_phrases",
        ),
        include_optional_cta=bool(include_optional),
        two_level_suffixes=frozenset(suffixes),
        extension_window=window,
    )


def load_sponsor_rules(path: Optional[Path] = None) -> SponsorRules:
    """
    Load sponsor rules from YAML.

    Falls back to the built-in defaults when the file is missing or invalid
    so the news endpoint keeps serving.
    """
    cfg_path = Path(path) if path else Path(settings.SPONSOR_RULES_PATH)
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.error("sponsor_rules_config_not_found", path=str(cfg_path))
        return SponsorRules()
    except OSError as exc:
        logger.error("sponsor_rules_config_read_error", path=str(cfg_path), error=str(exc))
        return SponsorRules()

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        logger.error("sponsor_rules_config_parse_error", path=str(cfg_path), error=str(exc))
        return SponsorRules()

    if not isinstance(data, dict):
        logger.error(
            "sponsor_rules_config_invalid_root",
            path=str(cfg_path),
            root_type=type(data).__name__,
        )
        return SponsorRules()

    return _parse_rules(data)


@lru_cache(maxsize=1)
def get_sponsor_rules() -> SponsorRules:
    return load_sponsor_rules()
