"""Single source of truth for all configuration and secrets.

All modules import from here, never from os.environ directly.

Settings come from secrets/triage.env (or the file named by
MAILTRIAGE_ENV_FILE; a .env.enc file is decrypted with SOPS), with
TRIAGE_* / EMAIL_* environment variables taking precedence.
"""

import json
import os
from collections.abc import Mapping
from pathlib import Path

from mailtriage.schemas.mailbox import EmailAccountConfig, RunMode
from mailtriage.schemas.triage import TriageConfig
from mailtriage.secrets import load_settings

PROJECT_ROOT = Path(__file__).resolve().parent.parent

ENV_FILE = Path(os.environ.get("MAILTRIAGE_ENV_FILE", PROJECT_ROOT / "secrets" / "triage.env"))

_settings = load_settings(ENV_FILE)


def _list(settings: Mapping[str, str], key: str, default: str = "") -> list[str]:
    raw = settings.get(key, default)
    return [s.strip() for s in raw.split(",") if s.strip()]


def _flag(settings: Mapping[str, str], key: str) -> bool:
    return settings.get(key, "false").strip().lower() == "true"


# --- Paths ---
STATS_PATH: str = _settings.get("TRIAGE_STATS_PATH", str(PROJECT_ROOT / "data" / "statistics.json"))
CACHE_DB_PATH: str = _settings.get("TRIAGE_CACHE_DB_PATH", str(PROJECT_ROOT / "data" / "stats_cache.db"))
AUDIT_LOG_PATH: str = _settings.get(
    "TRIAGE_AUDIT_LOG_PATH", str(PROJECT_ROOT / "data" / "triage_audit.jsonl")
)
SENDER_LISTS_PATH: str = _settings.get(
    "TRIAGE_SENDER_LISTS_PATH", str(PROJECT_ROOT / "data" / "sender_lists.json")
)

# --- Processing ---
MAX_PER_RUN: int = int(_settings.get("TRIAGE_MAX_PER_RUN", "50"))
CACHE_TTL_SECONDS: int = int(_settings.get("TRIAGE_CACHE_TTL_SECONDS", str(6 * 60 * 60)))


def default_run_mode(settings: Mapping[str, str] | None = None) -> RunMode:
    """DRY_RUN wins over PREVIEW_MODE; neither set means production."""
    settings = _settings if settings is None else settings
    if _flag(settings, "TRIAGE_DRY_RUN"):
        return RunMode.DRY_RUN
    if _flag(settings, "TRIAGE_PREVIEW_MODE"):
        return RunMode.PREVIEW
    return RunMode.PRODUCTION


def load_triage_config(settings: Mapping[str, str] | None = None) -> TriageConfig:
    """Build the classifier config from settings, with every default spelled out."""
    settings = _settings if settings is None else settings
    return TriageConfig(
        vip_senders=_list(settings, "TRIAGE_VIP_SENDERS"),
        vip_domains=_list(settings, "TRIAGE_VIP_DOMAINS"),
        protected_senders=_list(settings, "TRIAGE_KEEP_SENDERS"),
        protected_domains=_list(settings, "TRIAGE_KEEP_DOMAINS"),
        internal_domains=_list(settings, "TRIAGE_INTERNAL_DOMAINS", "alaska.edu,ua.edu"),
        never_archive_suffixes=_list(settings, "TRIAGE_NEVER_ARCHIVE_SUFFIXES", ".edu"),
        high_confidence=float(settings.get("TRIAGE_HIGH_CONFIDENCE", "0.8")),
        medium_confidence=float(settings.get("TRIAGE_MEDIUM_CONFIDENCE", "0.5")),
        sender_hash_salt=settings.get("TRIAGE_PII_SALT") or None,
    )


def load_email_accounts(settings: Mapping[str, str] | None = None) -> list[dict]:
    """Parse EMAIL_ACCOUNTS (a JSON list of account objects). Missing -> []."""
    settings = _settings if settings is None else settings
    raw = settings.get("EMAIL_ACCOUNTS", "")
    if not raw:
        return []
    accounts = json.loads(raw)
    if not isinstance(accounts, list):
        raise ValueError("EMAIL_ACCOUNTS must be a JSON list of account objects")
    return accounts


def find_account(accounts: list[dict], email: str | None) -> EmailAccountConfig | None:
    """Return the account matching ``email`` (or the first one when email is None)."""
    for account in accounts:
        if email is None or account.get("email", "").lower() == email.lower():
            return EmailAccountConfig.model_validate(account)
    return None
