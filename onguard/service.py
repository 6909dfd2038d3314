"""Engine wiring and process setup for OnGuard."""

import logging
import sys
from typing import Optional

from .cache import ExternalLookupCache
from .config import Config, load_config, validate_config
from .detector import (
    AccountReputationAnalyzer,
    ContextualAnalyzer,
    FusionEngine,
    HttpLlmBackend,
    PatternMatcher,
    PhoneReputationAnalyzer,
    UrlReputationAnalyzer,
)
from .registry import CounterScamClient, PhishingUrlRegistry, PoliceFraudClient
from .utils.pii import PiiRedactor

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging to stdout."""
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def build_engine(config: Optional[Config] = None) -> FusionEngine:
    """Construct the cache, registry clients, analyzers and fusion engine."""
    if config is None:
        config = load_config()

    errors = validate_config(config)
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))

    cache = ExternalLookupCache(
        ttl_seconds=config.cache_ttl_seconds,
        max_entries=config.cache_max_entries,
        session_ttl_seconds=config.session_ttl_seconds,
    )

    url_registry = PhishingUrlRegistry(
        cache,
        blocklist=config.phishing_urls,
        endpoint=config.url_registry_endpoint or None,
        timeout_seconds=config.lookup_timeout,
        api_key=config.url_registry_api_key or None,
    )
    phone_client = CounterScamClient(
        cache,
        base_url=config.phone_registry_base_url or None,
        search_path=config.phone_registry_search_path or None,
        timeout_seconds=config.lookup_timeout,
    )
    account_client = PoliceFraudClient(
        cache,
        base_url=config.account_registry_base_url or None,
        timeout_seconds=config.lookup_timeout,
    )

    backend = None
    if config.llm_enabled:
        backend = HttpLlmBackend(
            endpoint=config.llm_endpoint,
            api_key=config.llm_api_key,
            model=config.llm_model,
            timeout_seconds=config.llm_timeout,
        )

    logger.info(
        "Engine ready: blocklist=%d url_endpoint=%s llm=%s",
        url_registry.blocklist_size,
        "on" if url_registry.endpoint else "off",
        "on" if config.llm_configured else "off",
    )

    return FusionEngine(
        pattern_matcher=PatternMatcher(extra_keywords=config.extra_keywords),
        url_analyzer=UrlReputationAnalyzer(url_registry),
        phone_analyzer=PhoneReputationAnalyzer(phone_client),
        account_analyzer=AccountReputationAnalyzer(account_client),
        contextual_analyzer=ContextualAnalyzer(backend, timeout_seconds=config.llm_timeout),
        redactor=PiiRedactor(),
        min_text_length=config.min_text_length,
    )
