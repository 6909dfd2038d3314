"""Domain normalization utilities."""

from __future__ import annotations

import ipaddress
import unicodedata
from typing import Iterable
from urllib.parse import urlparse

import idna
import tldextract

# Bundled public suffix snapshot only; lookups never touch the network.
_extract = tldextract.TLDExtract(suffix_list_urls=())

# Cyrillic/Armenian characters that look like Latin
HOMOGLYPHS = {
    "а": "a",
    "е": "e",
    "о": "o",
    "р": "p",
    "с": "c",
    "у": "y",
    "х": "x",
    "ѕ": "s",
    "і": "i",
    "ј": "j",
    "ԁ": "d",
    "ɡ": "g",
    "ո": "n",
    "ս": "u",
}


def extract_hostname(value: str) -> str:
    """Return the lowercased hostname of a URL or bare host, without port."""
    raw = (value or "").strip()
    if not raw:
        return ""
    candidate = raw if "://" in raw else f"https://{raw}"
    try:
        parsed = urlparse(candidate)
        host = parsed.hostname or ""
    except ValueError:
        host = ""
    if not host:
        host = raw.split("://", 1)[-1].split("/", 1)[0].split(":", 1)[0]
    return host.strip().lower().strip(".")


def canonicalize_domain(value: str) -> str:
    """
    Normalize a domain/URL to a canonical host key.

    - Lowercase
    - Strip leading "www."
    - Ignore port/path/query/fragment
    """
    host = extract_hostname(value)
    if host.startswith("www.") and len(host) > 4:
        host = host[4:]
    return host


def is_ip_host(host: str) -> bool:
    try:
        ipaddress.ip_address((host or "").strip("[]"))
    except ValueError:
        return False
    return True


def decode_idn_host(host: str) -> str:
    """Decode punycode labels (xn--) to Unicode, returning the input on failure."""
    if "xn--" not in (host or ""):
        return host
    try:
        decoded = idna.decode(host)
    except (idna.IDNAError, UnicodeError):
        return host
    return decoded or host


def normalize_homoglyphs(text: str) -> str:
    """Replace homoglyphs with their Latin equivalents."""
    result = []
    for char in text:
        if char in HOMOGLYPHS:
            result.append(HOMOGLYPHS[char])
        else:
            result.append(unicodedata.normalize("NFKC", char))
    return "".join(result)


def host_words(host: str) -> list[str]:
    """Split a host into its label words ("kb-secure.login.tk" -> kb, secure, login, tk)."""
    words: list[str] = []
    for label in (host or "").lower().split("."):
        words.extend(part for part in label.split("-") if part)
    return words


def is_official_domain(host: str, official_domains: Iterable[str]) -> bool:
    """
    True when host is an official domain or one of its subdomains.

    Matching is exact-or-dot-suffix only: "sub.brand.com" matches "brand.com",
    "brand.com.attacker.net" and "evilbrand.com" do not.
    """
    host = (host or "").lower().strip(".")
    if not host:
        return False
    for official in official_domains:
        official = official.lower().strip(".")
        if host == official or host.endswith("." + official):
            return True
    return False


def has_public_suffix(value: str) -> bool:
    """True when the host ends in a known public suffix ("evil.tk", "a.co.kr")."""
    host = extract_hostname(value)
    return bool(host and _extract(host).suffix)


def strip_public_suffix(host: str) -> str:
    """Drop the public suffix: "login.kbstar.co.kr" -> "login.kbstar"."""
    host = (host or "").lower().strip(".")
    suffix = _extract(host).suffix if host else ""
    if suffix and host.endswith("." + suffix):
        return host[: -len(suffix) - 1]
    return host
