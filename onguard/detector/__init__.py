"""Scam detection analyzers and the fusion engine for OnGuard."""

from .account_analyzer import AccountReputationAnalyzer
from .contextual import ContextualAnalyzer, HttpLlmBackend, LlmBackend
from .fusion import FusionEngine
from .models import (
    AccountSignal,
    KeywordSignal,
    LlmRequest,
    LlmVerdict,
    PhoneSignal,
    ScamAnalysis,
    SignalResult,
    UrlSignal,
)
from .patterns import PatternMatcher
from .phone_analyzer import PhoneReputationAnalyzer
from .url_analyzer import UrlReputationAnalyzer

__all__ = [
    "FusionEngine",
    "PatternMatcher",
    "UrlReputationAnalyzer",
    "PhoneReputationAnalyzer",
    "AccountReputationAnalyzer",
    "ContextualAnalyzer",
    "LlmBackend",
    "HttpLlmBackend",
    "ScamAnalysis",
    "KeywordSignal",
    "SignalResult",
    "UrlSignal",
    "PhoneSignal",
    "AccountSignal",
    "LlmRequest",
    "LlmVerdict",
]
