"""Configuration management for OnGuard."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Set

import yaml
from dotenv import load_dotenv

from .utils.domains import canonicalize_domain

logger = logging.getLogger(__name__)

KEYWORD_TIER_NAMES = ("critical", "high", "medium")


@dataclass
class Config:
    """Engine configuration."""

    log_level: str = "INFO"

    # Lookup cache and registry sessions
    cache_ttl_seconds: int = 900
    cache_max_entries: int = 100
    session_ttl_seconds: int = 1800
    lookup_timeout: float = 10.0

    # Registries
    url_registry_endpoint: str = ""
    url_registry_api_key: str = ""
    phone_registry_base_url: str = ""
    phone_registry_search_path: str = ""
    account_registry_base_url: str = ""

    # Contextual (LLM) analysis
    llm_enabled: bool = True
    llm_endpoint: str = ""
    llm_api_key: str = ""
    llm_model: str = ""
    llm_timeout: float = 20.0

    # Detection
    min_text_length: int = 10

    # Paths
    config_dir: Path = field(default_factory=lambda: Path("./config"))

    # Loaded lists
    phishing_urls: Set[str] = field(default_factory=set)

    # Heuristics (override via config/heuristics.yaml)
    extra_keywords: dict[str, list[str]] = field(default_factory=dict)

    def __post_init__(self):
        """Normalize paths and load list files."""
        self.config_dir = Path(self.config_dir)
        self._load_lists()

    def _load_lists(self):
        """Load the phishing URL blocklist from the config directory."""
        phishing_path = self.config_dir / "phishing_urls.txt"
        if phishing_path.exists():
            raw = self._load_list_file(phishing_path)
            self.phishing_urls = {
                item if "/" in item else (canonicalize_domain(item) or item)
                for item in raw
            }

    @staticmethod
    def _load_list_file(path: Path) -> Set[str]:
        """Load a list file, ignoring comments and empty lines."""
        items = set()
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    items.add(line.lower())
        return items

    @property
    def llm_configured(self) -> bool:
        return self.llm_enabled and bool(self.llm_endpoint and self.llm_model)


def _load_heuristics(config_dir: Path) -> dict:
    path = Path(config_dir or ".") / "heuristics.yaml"
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except Exception as exc:
        logger.warning("Failed to parse heuristics.yaml: %s", exc)
        return {}

    def _coerce_keywords(raw) -> dict[str, list[str]]:
        tiers: dict[str, list[str]] = {}
        if not isinstance(raw, dict):
            return tiers
        for tier in KEYWORD_TIER_NAMES:
            entries = raw.get(tier)
            if not isinstance(entries, list):
                continue
            phrases = [str(entry).strip() for entry in entries if str(entry or "").strip()]
            if phrases:
                tiers[tier] = phrases
        return tiers

    return {
        "extra_keywords": _coerce_keywords(data.get("keywords") if isinstance(data, dict) else None),
    }


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    heuristics = _load_heuristics(config_dir)

    return Config(
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "900")),
        cache_max_entries=int(os.getenv("CACHE_MAX_ENTRIES", "100")),
        session_ttl_seconds=int(os.getenv("SESSION_TTL_SECONDS", "1800")),
        lookup_timeout=float(os.getenv("LOOKUP_TIMEOUT", "10")),
        url_registry_endpoint=os.getenv("URL_REGISTRY_ENDPOINT", "").strip(),
        url_registry_api_key=os.getenv("URL_REGISTRY_API_KEY", ""),
        phone_registry_base_url=os.getenv("PHONE_REGISTRY_BASE_URL", "").strip(),
        phone_registry_search_path=os.getenv("PHONE_REGISTRY_SEARCH_PATH", "").strip(),
        account_registry_base_url=os.getenv("ACCOUNT_REGISTRY_BASE_URL", "").strip(),
        llm_enabled=_env_bool("LLM_ENABLED", "true"),
        llm_endpoint=os.getenv("LLM_ENDPOINT", "").strip(),
        llm_api_key=os.getenv("LLM_API_KEY", ""),
        llm_model=os.getenv("LLM_MODEL", "").strip(),
        llm_timeout=float(os.getenv("LLM_TIMEOUT", "20")),
        min_text_length=int(os.getenv("MIN_TEXT_LENGTH", "10")),
        config_dir=config_dir,
        extra_keywords=heuristics.get("extra_keywords", {}),
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []
    if config.cache_ttl_seconds <= 0:
        errors.append("CACHE_TTL_SECONDS must be positive")
    if config.cache_max_entries <= 0:
        errors.append("CACHE_MAX_ENTRIES must be positive")
    if config.session_ttl_seconds <= 0:
        errors.append("SESSION_TTL_SECONDS must be positive")
    if config.lookup_timeout <= 0:
        errors.append("LOOKUP_TIMEOUT must be positive")
    if config.llm_timeout <= 0:
        errors.append("LLM_TIMEOUT must be positive")
    if config.min_text_length < 0:
        errors.append("MIN_TEXT_LENGTH must not be negative")

    if config.llm_enabled and config.llm_endpoint and not config.llm_model:
        errors.append("LLM_ENDPOINT set but LLM_MODEL missing")
    if config.llm_enabled and not config.llm_endpoint:
        # Engine still runs on rule verdicts alone.
        logger.info("No LLM_ENDPOINT configured; contextual analysis will be disabled")

    for name, value in (
        ("URL_REGISTRY_ENDPOINT", config.url_registry_endpoint),
        ("PHONE_REGISTRY_BASE_URL", config.phone_registry_base_url),
        ("ACCOUNT_REGISTRY_BASE_URL", config.account_registry_base_url),
        ("LLM_ENDPOINT", config.llm_endpoint),
    ):
        if value and not value.startswith(("http://", "https://")):
            errors.append(f"{name} must be an http(s) URL")

    return errors
