"""
Pattern tables for the input classifier.

All patterns are written against the normalized form produced by
normalizer.normalize(): lowercase ASCII, no diacritics, abbreviations
expanded ("mk" -> "mat khau"). Vietnamese words that collide once accents are
removed ("dẫn" and "DAN", "độc" and "đọc") are avoided or anchored.
"""

import re
from typing import Dict, List

from .base import Intent, WhitelistEntry


def _compile(patterns: List[str]) -> List[re.Pattern]:
    return [re.compile(p) for p in patterns]


# =============================================================================
# BLOCKLIST (checked first, in family order)
# =============================================================================

INJECTION_PATTERNS = _compile([
    r"ignore\s*(?:all\s*)?(?:previous|above|prior|the)\s*(?:instructions?|prompts?|rules?)",
    r"bo qua\s*(?:moi\s*|tat ca\s*)?(?:huong dan|quy tac|lenh|chi dan)",
    r"disregard\s*(?:everything|all|the|your)",
    r"system\s*prompt",
    r"(?:show|print|display|reveal|repeat)\s*(?:me\s*)?(?:your|the)\s*(?:prompt|instructions?|rules?)",
    r"\bdan mode\b|do anything now",
    r"\bjailbreak",
    r"(?:pretend|act|behave)\s*(?:like|as)\s*(?:you are|an?\b|if)",
    r"gia vo\s*(?:la|nhu|lam)\b",
    r"you are now|bay gio ban la",
    r"from now on|tu gio tro di",
    r"\[/?inst\]",
    r"<</?sys>>",
    r"<\|im_(?:start|end)\|>",
    r"### (?:human|assistant|system):",
    r"developer\s*mode",
    r"enable\s*(?:debug|admin|god)\s*mode",
])

HARMFUL_PATTERNS = _compile([
    r"thuoc doc|cach (?:de )?(?:chet|tu tu)|\btu tu\b|tu sat|suicide",
    r"cach\s*(?:giet|hai nguoi|dau doc)|\bmurder\b",
    r"\b(?:self harm|tu hai|tu cat|tu rach)\b",
    r"\b(?:hack|crack|exploit|bypass)\s*(?:password|mat khau|system|he thong|tai khoan)",
    r"sql injection|\bxss\b|\bddos\b|brute force",
    r"phishing|ransomware|malware|\bvirus\b",
    r"truy cap\s*(?:trai phep|admin|root|database|co so du lieu)",
    r"(?:password|mat khau)\s*(?:cua\s*)?(?:admin|root|database|server)",
    r"(?:lam|che tao)\s*(?:bom|thuoc no|explosive|weapon|vu khi)",
    r"ma tuy|\bdrugs?\b|cocaine|heroin|\bmeth\b",
    r"(?:lay|danh cap|steal)\s*(?:thong tin|data|du lieu)\s*(?:cua\s*)?(?:benh nhan|patient)",
    r"\bleak\s*(?:data|database|thong tin)",
])

OFF_TOPIC_PATTERNS = _compile([
    # Programming
    r"viet\s*(?:code|script|chuong trinh|ham|function)",
    r"code\s*(?:python|java|javascript|c\+\+|sql|html)",
    r"(?:fix|sua|debug)\s*(?:code|bug|loi code)",
    r"giai\s*(?:thuat toan|algorithm|bai tap)",
    # Creative writing
    r"viet\s*(?:tho|bai hat|truyen|bai van|luan van|essay)",
    r"sang tac|\bcompose\b|write\s*(?:a\s*)?(?:poem|song|story)",
    # Translation
    r"(?:dich|translate)\b.{0,30}\b(?:sang|to|qua)\s*(?:tieng|ngon ngu|english|vietnamese)",
    # Politics & religion
    r"chinh tri|bau cu|dang phai|political|\bpolitics\b",
    r"ton giao|religion|phat giao|thien chua|\ballah\b",
    # Cooking
    r"(?:nau|che bien)\s*(?:an|mon|banh|com|pho)\b",
    r"cong thuc\s*(?:nau|lam)\s*(?:mon|banh|an)|\brecipe|\bcooking\b",
    # Dating
    r"tinh yeu|hen ho|\bdating\b|yeu duong",
    r"(?:cua|tan|flirt)\s*(?:gai|trai|crush)\b",
    # Finance & crypto
    r"(?:gia|price)\s*(?:vang|gold|bitcoin|coin|stock|chung khoan)",
    r"dau tu|\binvest|\btrading\b|crypto|\bforex\b|\bnft\b",
    # Entertainment
    r"(?:phim|movie|netflix|game|tro choi)\s*(?:nao\s*)?(?:hay|nen xem|recommend)",
    r"(?:nhac|music|spotify|youtube)\s*(?:hay|nghe)",
    # General knowledge
    r"(?:thu do|capital)\s*(?:cua|of)\b",
    r"(?:ai la|who is)\s*(?:tong thong|president|thu tuong|prime minister)",
    r"lich su\s*(?:the gioi|world)",
    r"thoi tiet|\bweather\b",
    # Math homework
    r"giai\s*(?:phuong trinh|equation|toan|math)",
    r"tinh\s*(?:dao ham|tich phan|integral)",
    # Small talk about mood
    r"^(?:toi |minh )?(?:dang |rat |hoi |that )?(?:chan|buon|met|stress|buc minh|kho chiu|happy|sad|tired|bored|boring)(?: qua| that| ghe| lam)?[!. ]*$",
])

BLOCKLIST: Dict[str, List[re.Pattern]] = {
    "injection": INJECTION_PATTERNS,
    "harmful": HARMFUL_PATTERNS,
    "off_topic": OFF_TOPIC_PATTERNS,
}

# Blocklist family -> message key in chat_prompts.MESSAGES
BLOCKLIST_MESSAGES = {
    "injection": "blocked_injection",
    "harmful": "blocked_harmful",
    "off_topic": "blocked_off_topic",
}


# =============================================================================
# PASSWORD / ACCOUNT OVERRIDES
# =============================================================================

FORGOT_PASSWORD_PATTERNS = _compile([
    r"quen\s*(?:mat\s*)?(?:mat khau|password)",
    r"forgot\s*(?:my\s*)?password",
    r"reset\s*(?:lai\s*)?(?:mat khau|password)",
    r"(?:lay|cap|khoi phuc)\s*lai\s*mat khau",
    r"khong nho\s*mat khau",
    r"mat khau\s*bi\s*quen",
])

ACCOUNT_LOCKED_PATTERNS = _compile([
    r"tai khoan\s*(?:cua toi\s*|cua minh\s*)?bi\s*khoa",
    r"bi\s*khoa\s*tai khoan",
    r"khoa\s*tai khoan",
    r"account\s*(?:is\s*|was\s*|got\s*)?locked",
    r"locked\s*out",
    r"nhap sai\s*mat khau",
])

CHANGE_PASSWORD_PATTERNS = _compile([
    r"(?:doi|thay doi|thay|cap nhat)\s*mat khau",
    r"change\s*(?:my\s*)?password",
    r"update\s*(?:my\s*)?password",
])

# Route key the change-password flow navigates to
CHANGE_PASSWORD_ROUTE_KEY = "settings"


# =============================================================================
# WHITELIST (ordered; first match wins)
# =============================================================================

_HELP_VI = (
    "Tôi có thể hỗ trợ:\n• Điều hướng đến các màn hình (báo cáo, cài đặt, thiết bị...)\n"
    "• Đổi giao diện sáng/tối\n\nBạn cần gì?"
)
_HELP_EN = (
    "I can help with:\n• Opening screens (reports, settings, equipment...)\n"
    "• Switching the light/dark theme\n\nWhat do you need?"
)

WHITELIST: List[WhitelistEntry] = [
    WhitelistEntry(
        name="greeting",
        patterns=["xin chao", "chao", "hello", "hi", "hey", "alo", "good morning", "good afternoon", "good evening"],
        responses={
            "vi": ["Xin chào. Tôi có thể hỗ trợ gì?", "Chào bạn. Bạn cần mở màn hình nào?"],
            "en": ["Hello. How can I help?", "Hi. Which screen do you need?"],
        },
        max_words=3,
    ),
    WhitelistEntry(
        name="identity",
        patterns=["ban la ai", "ai vay", "ban ten gi", "who are you", "what are you"],
        responses={
            "vi": ["Tôi là trợ lý IT của bệnh viện. Tôi hỗ trợ điều hướng hệ thống và đổi giao diện."],
            "en": ["I'm the hospital IT assistant. I help you navigate the portal and switch the theme."],
        },
        max_words=6,
    ),
    WhitelistEntry(
        name="capabilities",
        patterns=["ban lam duoc gi", "ban co the lam gi", "ban giup duoc gi", "giup duoc gi", "what can you do"],
        responses={"vi": [_HELP_VI], "en": [_HELP_EN]},
        max_words=6,
    ),
    WhitelistEntry(
        name="thanks",
        patterns=["cam on", "thanks", "thank you", "tks"],
        responses={
            "vi": ["Không có gì. Cần hỗ trợ thêm cứ hỏi.", "Rất vui được hỗ trợ."],
            "en": ["You're welcome.", "Glad to help."],
        },
        max_words=5,
    ),
    WhitelistEntry(
        name="acknowledgment",
        patterns=["ok", "okay", "oke", "vang", "da hieu", "hieu roi", "got it"],
        responses={
            "vi": ["Cần hỗ trợ gì thêm cứ hỏi."],
            "en": ["Let me know if you need anything else."],
        },
        max_words=3,
    ),
    WhitelistEntry(
        name="farewell",
        patterns=["tam biet", "bye", "goodbye", "gap lai sau"],
        responses={"vi": ["Tạm biệt."], "en": ["Goodbye."]},
        max_words=4,
    ),
    WhitelistEntry(
        name="theme",
        patterns=[
            "giao dien", "theme", "dark mode", "light mode", "che do toi", "che do sang",
            "nen toi", "nen sang", "mau toi", "mau sang", "dark", "light",
        ],
        intent=Intent.THEME,
    ),
    WhitelistEntry(
        name="navigation",
        patterns=[
            "mo", "xem", "vao", "chuyen den", "chuyen toi", "di den", "dua toi den", "hien thi",
            "open", "go to", "navigate", "show", "man hinh", "trang chu", "bao cao", "report",
            "cai dat", "settings", "thiet bi", "equipment", "thong ke", "dashboard",
        ],
        intent=Intent.NAV,
    ),
    WhitelistEntry(
        name="it_support",
        patterns=[
            "bi loi", "bao loi", "khong vao duoc", "khong dang nhap duoc", "bi treo", "cham qua",
            "may in", "mang", "wifi", "error", "not working", "crash",
        ],
        intent=Intent.IT_SUPPORT,
    ),
    WhitelistEntry(
        name="feature_help",
        patterns=["o dau", "cho nao", "lam sao", "nhu the nao", "cach", "where", "how"],
        intent=Intent.FEATURE_HELP,
    ),
]

# Words that carry the navigation verb rather than the target; removed before
# route matching so "mo bao cao giuong" looks up "bao cao giuong".
NAV_FILLER_WORDS = {
    "mo", "xem", "vao", "chuyen", "den", "toi", "di", "dua", "hien", "thi", "open", "go", "to",
    "navigate", "show", "me", "the", "cho", "giup", "minh", "man", "hinh", "trang", "screen",
    "page", "please", "lam", "on", "voi", "nhe", "a",
}


def intent_vocabulary() -> Dict[Intent, List[str]]:
    """Pattern vocabulary per intent, used by the security gate."""
    vocabulary: Dict[Intent, List[str]] = {}
    for entry in WHITELIST:
        if entry.intent is not None:
            vocabulary.setdefault(entry.intent, []).extend(entry.patterns)
    return vocabulary
