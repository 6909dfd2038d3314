"""Keyword tiers, regex rules and reference lists used by the analyzers.

Keyword phrases are stored without spaces; matching runs on text that has
been lowercased with all whitespace removed, so spacing variants of the same
Korean phrase ("급하게 필요", "급하게필요") match alike.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class KeywordTier(float, Enum):
    """Keyword weight tiers."""

    CRITICAL = 0.6  # Direct money/credential demands, authority threats
    HIGH = 0.4  # Indirect money talk, phishing vocabulary
    MEDIUM = 0.25  # Suspicious but common expressions

    @property
    def label(self) -> str:
        return TIER_LABELS[self]


TIER_LABELS = {
    KeywordTier.CRITICAL: "매우 위험",
    KeywordTier.HIGH: "위험",
    KeywordTier.MEDIUM: "의심",
}

CRITICAL_KEYWORDS: tuple[str, ...] = (
    # Direct money requests
    "계좌번호알려주", "계좌번호보내", "입금해주", "송금해주", "이체해주",
    "선입금", "선결제", "선지급", "보증금입금", "착불결제",
    # Urgent transfers
    "급하게필요", "긴급송금", "지금당장", "빨리입금", "즉시송금",
    "오늘안에", "1시간이내", "30분이내",
    # Credential requests
    "인증번호알려", "OTP번호", "보안카드번호", "비밀번호알려", "공인인증서",
    "카드번호알려", "CVC번호", "CVV번호", "유효기간알려",
    # Threats / authority impersonation
    "체포영장", "구속영장", "압수수색", "벌금납부", "과태료납부",
    "검찰청에서", "경찰청에서", "금감원에서", "국세청에서", "법원에서",
)

HIGH_KEYWORDS: tuple[str, ...] = (
    # Money
    "급전", "급하게", "돈필요", "빌려주세요", "대출", "현금대출", "무담보대출",
    "신용대출", "소액대출", "당일대출", "즉시대출", "무서류대출",
    "돈빌려", "돈좀", "급하게돈",
    # Accounts / transfers
    "계좌번호", "송금", "입금", "이체", "무통장입금", "현금입금",
    "송금확인", "입금확인", "이체확인", "계좌확인", "입금계좌",
    "국민은행", "신한은행", "우리은행", "하나은행", "농협",
    "카카오뱅크", "토스뱅크", "케이뱅크",
    # Phishing
    "인증번호", "OTP", "보안카드", "비밀번호", "개인정보확인",
    "신분증사진", "신분증촬영", "통장사본", "주민번호",
    "본인확인", "계정잠금", "비밀번호변경", "로그인실패",
    # Impersonated institutions
    "경찰청", "검찰청", "금융감독원", "금감원", "국세청", "관세청",
    "법원", "행정안전부", "국민연금", "건강보험공단",
    "우체국", "국민건강보험", "사이버수사대",
    # Illegal trade
    "대포폰", "대포통장", "명의대여", "계좌대여", "법인통장",
    "휴대폰개통", "휴대폰대납", "카드대납",
    # Investment
    "원금보장", "수익보장", "고수익", "단기수익", "확실한수익",
    "비트코인투자", "코인투자", "해외선물", "FX마진", "주식리딩",
    "리딩방", "시그널방", "VIP방", "수익인증",
    # Crypto / NFT
    "이더리움", "리플", "도지코인", "NFT", "에어드랍",
    "ICO", "채굴", "지갑주소", "코인지갑", "트론",
    "바이낸스", "업비트", "빗썸", "코인원",
    # Romance
    "사랑해요", "보고싶어요", "결혼하고싶어", "만나고싶어",
    "항공권비용", "비자비용", "병원비", "수술비",
    "외국에있는데", "해외출장중",
)

MEDIUM_KEYWORDS: tuple[str, ...] = (
    # Too-good offers
    "당첨", "환급", "세금", "환불", "보상금", "지원금", "장려금",
    "무료증정", "무료지급", "무료제공", "무료나눔",
    "축하합니다", "행운의주인공", "추첨결과",
    # Threat vocabulary
    "체포", "구속", "영장", "벌금", "과태료", "고소", "고발",
    "소송", "법적조치", "강제집행", "압류", "연체",
    # Trade pressure
    "선구매", "선예약", "선착순", "한정수량", "특가", "파격할인",
    "반값", "90%할인", "거의공짜", "무료배송",
    "직거래안됨", "택배만가능", "물건보내드림",
    # Parcel impersonation
    "택배발송", "택배비", "추가배송비", "배송비결제", "배송대행",
    "반품비용", "교환비용", "착불비",
    "배송조회", "배송실패", "주소확인",
    # Job scams
    "재택알바", "고수익알바", "간단한알바", "쉬운알바", "누구나가능",
    "통장만있으면", "신분증만있으면", "휴대폰만있으면",
    "일당", "주급", "간단업무", "투잡",
    # Remote control / secrecy
    "문자확인", "링크클릭", "앱설치", "프로그램설치", "원격제어",
    "팀뷰어", "애니데스크", "화면공유", "비밀보장", "절대비밀",
    # SNS accounts
    "계정복구", "계정잠김", "로그인시도", "의심스러운활동",
    "인스타그램", "페이스북", "카카오계정", "네이버계정",
    # Government subsidy impersonation
    "긴급재난지원금", "소상공인지원", "청년지원금", "복지급여",
    "정부지원", "지원대상자", "신청기한",
)

DEFAULT_KEYWORD_TIERS: dict[KeywordTier, tuple[str, ...]] = {
    KeywordTier.CRITICAL: CRITICAL_KEYWORDS,
    KeywordTier.HIGH: HIGH_KEYWORDS,
    KeywordTier.MEDIUM: MEDIUM_KEYWORDS,
}


@dataclass(frozen=True)
class PatternRule:
    """A weighted regex run against the raw text."""

    name: str
    regex: re.Pattern
    weight: float
    description: str


# Phone and account shapes are deliberately absent: a bare number says
# nothing until a registry confirms it.
DEFAULT_PATTERN_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        "national_id",
        re.compile(r"(?<!\d)\d{6}-?[1-4]\d{6}(?!\d)"),
        0.4,
        "주민등록번호",
    ),
    PatternRule(
        "passport",
        re.compile(r"(?<![A-Za-z0-9])[A-Z][A-Z]?\d{7,8}(?!\d)"),
        0.3,
        "여권번호 패턴",
    ),
    PatternRule(
        "short_url",
        re.compile(r"https?://(?:bit\.ly|goo\.gl|tinyurl\.com|t\.co|is\.gd|v\.gd|ow\.ly|buff\.ly)/\S+", re.IGNORECASE),
        0.25,
        "단축 URL",
    ),
    PatternRule(
        "free_tld_url",
        re.compile(
            r"https?://[^\s/]*\.(?:tk|ml|ga|cf|gq|xyz|top|work|click|link|online)(?![A-Za-z0-9-])(?:[/:?#]\S*)?",
            re.IGNORECASE,
        ),
        0.3,
        "무료/의심 도메인",
    ),
    PatternRule(
        "ip_url",
        re.compile(r"https?://\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}(?::\d+)?(?:/\S*)?", re.IGNORECASE),
        0.35,
        "IP 직접 접근 URL",
    ),
    PatternRule(
        "money_amount",
        re.compile(r"\d{1,3}(?:,\d{3})+원"),
        0.15,
        "금액 표시",
    ),
    PatternRule(
        "money_manwon",
        re.compile(r"\d+만\s?원"),
        0.15,
        "만원 단위 금액",
    ),
    PatternRule(
        "btc_wallet",
        re.compile(r"(?<![A-Za-z0-9])(?:1|3|bc1)[a-zA-Z0-9]{25,39}(?![A-Za-z0-9])"),
        0.3,
        "비트코인 지갑 주소",
    ),
    PatternRule(
        "eth_wallet",
        re.compile(r"(?<![A-Za-z0-9])0x[a-fA-F0-9]{40}(?![A-Za-z0-9])"),
        0.3,
        "이더리움 지갑 주소",
    ),
)

COMBINATION_BONUS = 0.2
COMBINATION_REASON = "복합 스캠 패턴 (조합 공격)"

# Substrings marking a detected keyword as belonging to a category.
CATEGORY_MARKERS: dict[str, tuple[str, ...]] = {
    "money": ("급전", "송금", "입금"),
    "urgency": ("급하", "빨리", "즉시"),
    "auth": ("인증", "otp", "비밀번호"),
}

# Domain triggers for contextual (LLM) escalation, matched on compacted text.
MONEY_TRIGGERS: tuple[str, ...] = ("입금", "송금", "계좌", "선입금", "대출", "돈", "급전")
URGENCY_TRIGGERS: tuple[str, ...] = ("긴급", "급하", "빨리", "지금당장", "지금바로", "오늘안에")

# Narrower sets for the urgency + money + URL combination bonus.
COMBO_URGENCY_MARKERS: tuple[str, ...] = ("긴급", "급하", "빨리")
COMBO_MONEY_MARKERS: tuple[str, ...] = ("입금", "송금", "계좌")


# ---------------------------------------------------------------------------
# URL reference lists
# ---------------------------------------------------------------------------

SUSPICIOUS_TLDS: frozenset[str] = frozenset({
    "tk", "ml", "ga", "cf", "gq",  # Free registrations
    "top", "xyz", "club", "work", "click",
    "loan", "men", "icu", "win", "bid",
})

SHORTENER_DOMAINS: frozenset[str] = frozenset({
    "bit.ly", "goo.gl", "tinyurl.com", "ow.ly",
    "is.gd", "v.gd", "buff.ly", "adf.ly", "t.co",
    "url.kr", "han.gl", "me2.do",  # Korean services
})

PHISHING_URL_KEYWORDS: tuple[str, ...] = (
    "login", "signin", "account", "secure", "verify",
    "update", "confirm", "banking", "payment", "wallet",
    "security", "suspended", "locked", "unusual",
    "gift", "prize", "winner", "claim", "bonus",
)

# Bank/brand token -> official registrable domains.
BANK_OFFICIAL_DOMAINS: dict[str, tuple[str, ...]] = {
    "kb": ("kbstar.com", "kbcard.com"),
    "kookmin": ("kbstar.com",),
    "shinhan": ("shinhan.com", "shinhansec.com", "shinhancard.com"),
    "woori": ("wooribank.com",),
    "hana": ("hanabank.com", "hanafn.com"),
    "nh": ("nonghyup.com",),
    "nonghyup": ("nonghyup.com",),
    "ibk": ("ibk.co.kr",),
    "sc": ("standardchartered.co.kr",),
    "citi": ("citibank.co.kr",),
    "kakaobank": ("kakaobank.com",),
    "kbank": ("kbanknow.com",),
    "tossbank": ("tossbank.com",),
}
