"""External fraud registry clients for OnGuard."""

from .base import (
    BaseRegistryClient,
    LookupResult,
    MalformedResponseError,
    RegistryAPIError,
    RegistryLookupError,
    RegistryTimeoutError,
    SessionError,
)
from .counter_scam import CounterScamClient, PhoneReport, normalize_phone
from .phishing_url import PhishingUrlRegistry
from .police_fraud import AccountReport, PoliceFraudClient

__all__ = [
    "BaseRegistryClient",
    "LookupResult",
    "RegistryLookupError",
    "RegistryTimeoutError",
    "RegistryAPIError",
    "MalformedResponseError",
    "SessionError",
    "CounterScamClient",
    "PhoneReport",
    "normalize_phone",
    "PoliceFraudClient",
    "AccountReport",
    "PhishingUrlRegistry",
]
