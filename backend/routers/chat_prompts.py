"""
CareNav Chat Prompts - Localized replies, system prompts and text cleanup

Contains:
- MESSAGES / get_message(): Every user-visible reply in Vietnamese and English
- build_system_prompt(): Intent-specific system prompt with the visible routes
- sanitize_input(): Strip control characters and injection markers from input
- clean_response_for_display(): Remove think tags and tool-call leakage
- sanitize_model_output(): Remove prompt leaks and external URLs, cap length
- finalize_text(): Trim, capitalize and punctuate a finished assistant turn
- truncate_for_history() / estimate_tokens(): History budgeting helpers
"""

import math
import re
from typing import Iterable, Optional

DEFAULT_LANGUAGE = "vi"

VIETNAMESE_LETTERS = re.compile(
    r"[àáạảãâầấậẩẫăằắặẳẵèéẹẻẽêềếệểễìíịỉĩòóọỏõôồốộổỗơờớợởỡùúụủũưừứựửữỳýỵỷỹđ]",
    re.IGNORECASE,
)

MESSAGES = {
    "greeting": {
        "vi": "Xin chào {name}. Tôi là trợ lý IT của bệnh viện. Tôi có thể mở các màn hình báo cáo, thiết bị, cài đặt hoặc đổi giao diện sáng/tối.",
        "en": "Hello {name}. I'm the hospital IT assistant. I can open report, equipment and settings screens or switch the light/dark theme.",
    },
    "blocked_injection": {
        "vi": "Yêu cầu không hợp lệ. Cần hỗ trợ vui lòng liên hệ IT Helpdesk ({hotline}).",
        "en": "Invalid request. For support please contact the IT Helpdesk ({hotline}).",
    },
    "blocked_harmful": {
        "vi": "Không thể xử lý yêu cầu này. Nếu cần hỗ trợ khẩn cấp, vui lòng liên hệ IT Helpdesk ({hotline}).",
        "en": "I can't process this request. For urgent help please contact the IT Helpdesk ({hotline}).",
    },
    "blocked_off_topic": {
        "vi": "Nội dung này nằm ngoài phạm vi hỗ trợ. Tôi có thể giúp điều hướng hệ thống hoặc đổi giao diện. Cần hỗ trợ kỹ thuật khác vui lòng liên hệ IT Helpdesk ({hotline}).",
        "en": "That is outside what I can help with. I can navigate the portal or switch the theme. For other technical help contact the IT Helpdesk ({hotline}).",
    },
    "blocked_security": {
        "vi": "Yêu cầu quá dài hoặc không rõ ràng. Vui lòng nói ngắn gọn màn hình bạn cần mở.",
        "en": "The request is too long or unclear. Please name the screen you need briefly.",
    },
    "not_understood": {
        "vi": "Tôi chưa hiểu yêu cầu. Bạn có thể nói rõ hơn, ví dụ: \"mở báo cáo giường\"?",
        "en": "I didn't understand that. Could you be more specific, e.g. \"open bed usage report\"?",
    },
    "out_of_scope": {
        "vi": "Tôi có thể hỗ trợ:\n• Điều hướng đến các màn hình (báo cáo, cài đặt, thiết bị...)\n• Đổi giao diện sáng/tối\n\nCần hỗ trợ khác vui lòng liên hệ IT Helpdesk ({hotline}).",
        "en": "I can help with:\n• Opening screens (reports, settings, equipment...)\n• Switching the light/dark theme\n\nFor anything else contact the IT Helpdesk ({hotline}).",
    },
    "forgot_password": {
        "vi": "Tôi không thể cấp lại mật khẩu. Vui lòng liên hệ IT Helpdesk ({hotline}) để được đặt lại mật khẩu.",
        "en": "I can't reset passwords. Please contact the IT Helpdesk ({hotline}) to have your password reset.",
    },
    "account_locked": {
        "vi": "Tài khoản sẽ bị khóa sau {attempts} lần nhập sai mật khẩu. Vui lòng liên hệ IT Helpdesk ({hotline}) để mở khóa.",
        "en": "Accounts are locked after {attempts} failed password attempts. Please contact the IT Helpdesk ({hotline}) to unlock it.",
    },
    "rate_limited_wait": {
        "vi": "Vui lòng chờ {seconds} giây.",
        "en": "Please wait {seconds} seconds.",
    },
    "rate_limited": {
        "vi": "Đã đạt giới hạn tin nhắn. Vui lòng chờ một chút.",
        "en": "Message limit reached. Please wait a moment.",
    },
    "fallback_empty": {
        "vi": "Tôi chưa có câu trả lời phù hợp. Vui lòng liên hệ IT Helpdesk ({hotline}).",
        "en": "I don't have a suitable answer. Please contact the IT Helpdesk ({hotline}).",
    },
    "stopped": {
        "vi": "Đã dừng.",
        "en": "Stopped.",
    },
    "apology": {
        "vi": "Xin lỗi, hệ thống đang gặp sự cố. Vui lòng thử lại hoặc liên hệ IT Helpdesk ({hotline}).",
        "en": "Sorry, the assistant is having trouble. Please try again or contact the IT Helpdesk ({hotline}).",
    },
    "offline": {
        "vi": "Không thể kết nối máy chủ trợ lý. Cần hỗ trợ vui lòng liên hệ IT Helpdesk ({hotline}).",
        "en": "Can't reach the assistant server. For support contact the IT Helpdesk ({hotline}).",
    },
    "nav_opening": {
        "vi": "Đang mở **{title}**...",
        "en": "Opening **{title}**...",
    },
    "nav_opening_settings": {
        "vi": "Đang mở **{title}**. Bạn có thể đổi mật khẩu tại đây.",
        "en": "Opening **{title}**. You can change your password there.",
    },
    "nav_already_here": {
        "vi": "Bạn đang ở **{title}**.",
        "en": "You are already on **{title}**.",
    },
    "nav_failed": {
        "vi": "Không thể mở trang này. Có thể bạn không có quyền truy cập.",
        "en": "I can't open that page. You may not have access to it.",
    },
    "theme_dark": {
        "vi": "Đã chuyển sang giao diện tối.",
        "en": "Switched to the dark theme.",
    },
    "theme_light": {
        "vi": "Đã chuyển sang giao diện sáng.",
        "en": "Switched to the light theme.",
    },
    "theme_failed": {
        "vi": "Không thể đổi giao diện. Vui lòng thử lại.",
        "en": "Couldn't change the theme. Please try again.",
    },
    "tool_invalid_args": {
        "vi": "Không thể thực hiện do tham số không hợp lệ.",
        "en": "Couldn't do that because the parameters were invalid.",
    },
    "tool_failed": {
        "vi": "Không thể thực hiện thao tác này. Vui lòng liên hệ IT Helpdesk ({hotline}).",
        "en": "Couldn't perform that action. Please contact the IT Helpdesk ({hotline}).",
    },
    "disambiguation": {
        "vi": "Tìm thấy {count} màn hình phù hợp:\n\n{options}\n\nBạn cần mở màn hình nào?",
        "en": "Found {count} matching screens:\n\n{options}\n\nWhich one should I open?",
    },
    "nav_not_found": {
        "vi": "Không tìm thấy màn hình \"{query}\".\n\nCác màn hình có sẵn:\n{options}",
        "en": "No screen matches \"{query}\".\n\nAvailable screens:\n{options}",
    },
}


def get_message(key: str, language: str = DEFAULT_LANGUAGE, **fmt) -> str:
    """Return the localized message for key, formatted with fmt.

    Unknown languages fall back to Vietnamese.
    """
    variants = MESSAGES[key]
    template = variants.get(language) or variants[DEFAULT_LANGUAGE]
    return template.format(**fmt) if fmt else template


# =============================================================================
# SYSTEM PROMPTS
# =============================================================================

_INTENT_INSTRUCTIONS = {
    "nav": "Người dùng muốn mở một màn hình. Gọi công cụ nav với key phù hợp nhất trong ROUTES. Không tự bịa key.",
    "theme": "Người dùng muốn đổi giao diện. Gọi công cụ theme với mode light, dark hoặc toggle.",
    "it_support": "Người dùng gặp sự cố kỹ thuật. Hướng dẫn ngắn gọn các bước cơ bản, sau đó đề nghị liên hệ IT Helpdesk.",
    "feature_help": "Người dùng hỏi cách dùng một chức năng. Giải thích ngắn gọn màn hình nào chứa chức năng đó.",
}


def build_system_prompt(
    intent: Optional[str],
    routes: Iterable,
    hotline: str,
    language: str = DEFAULT_LANGUAGE,
    max_routes: int = 10,
) -> str:
    """Build the system prompt for one request.

    Args:
        intent: Intent value (nav, theme, it_support, feature_help)
        routes: RouteInfo items visible to the current user
        hotline: Escalation number quoted for out-of-scope requests
        language: Language the reply must be written in
        max_routes: Cap on routes listed in the prompt

    Returns:
        The system prompt text
    """
    route_list = "|".join(f"{r.key}:{r.title}" for r in list(routes)[:max_routes])
    reply_language = "tiếng Việt" if language == "vi" else "English"
    lines = [
        "Trợ lý IT Bệnh viện.",
        "PHẠM VI: Chỉ điều hướng màn hình và đổi giao diện. Không cấp lại mật khẩu, không sửa máy, không truy cập dữ liệu.",
        f"NGOÀI PHẠM VI: \"Liên hệ IT Helpdesk {hotline}\"",
        f"ROUTES: {route_list}",
    ]
    instruction = _INTENT_INSTRUCTIONS.get(intent or "")
    if instruction:
        lines.append(instruction)
    lines.append(f"Trả lời ngắn gọn, chuyên nghiệp, bằng {reply_language}.")
    return "\n".join(lines)


# =============================================================================
# INPUT / OUTPUT CLEANUP
# =============================================================================

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_INSTRUCTION_MARKERS = re.compile(
    r"\[/?INST\]|<</?SYS>>|<\|im_(?:start|end)\|>|### (?:Human|Assistant|System):",
    re.IGNORECASE,
)


def sanitize_input(text: str, max_length: int = 500) -> str:
    """Clean raw user input before classification.

    Removes:
    - Control characters
    - Runs of spaces/tabs and more than two consecutive newlines
    - Fenced code blocks and HTML/XML tags
    - Chat-template instruction markers ([INST], <<SYS>>, <|im_start|>, ...)
    """
    if not text:
        return ""

    result = text.strip()[:max_length]
    result = _CONTROL_CHARS.sub("", result)
    result = re.sub(r"[ \t]+", " ", result)
    result = re.sub(r"\n{3,}", "\n\n", result)
    result = re.sub(r"```[\s\S]*?```", "", result)
    result = _INSTRUCTION_MARKERS.sub("", result)
    result = re.sub(r"<[^>]+>", "", result)
    return result.strip()


def _remove_tool_json(content: str) -> str:
    """Remove JSON objects that look like tool calls."""
    result = content
    while True:
        match = re.search(r'\{\s*["\']name["\']\s*:\s*["\'](\w+)["\']', result)
        if not match:
            break

        start = match.start()
        depth = 0
        in_string = False
        escape_next = False
        end = start

        for i, c in enumerate(result[start:], start):
            if escape_next:
                escape_next = False
                continue
            if c == "\\":
                escape_next = True
                continue
            if c == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    end = i + 1
                    break

        if end > start:
            result = result[:start] + result[end:]
        else:
            # Unterminated object: the rest of the text is tool-call residue
            result = result[:start]
            break

    return result


def clean_response_for_display(text: str) -> str:
    """Clean a model response of tool-call artifacts and think tags.

    Removes:
    - <tool_call>...</tool_call> blocks and ```json tool blocks
    - Plain "navigate_to_screen x" / "change_theme dark" commands
    - Inline JSON tool calls ({"name": "...", "arguments": ...})
    - Complete <think>...</think> blocks, an unterminated <think> tail and
      anything before an orphaned </think>
    """
    if not text:
        return ""

    text = re.sub(r"<tool_call>[\s\S]*?</tool_call>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"<tool_call>[\s\S]*$", "", text, flags=re.IGNORECASE)
    text = re.sub(r"```json\s*\{[^`]*\"name\"[^`]*```", "", text, flags=re.IGNORECASE)
    text = re.sub(r"navigate_to_screen\s+[/\w\-]+", "", text, flags=re.IGNORECASE)
    text = re.sub(r"change_theme\s+(?:dark|light|toggle)", "", text, flags=re.IGNORECASE)
    text = _remove_tool_json(text)

    text = re.sub(r"<think>[\s\S]*?</think>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"<think>[\s\S]*$", "", text, flags=re.IGNORECASE)
    text = re.sub(r"^[\s\S]*?</think>", "", text, flags=re.IGNORECASE)

    return text.strip()


_LEAK_PATTERNS = [
    re.compile(r"PHẠM VI:[^\n]*", re.IGNORECASE),
    re.compile(r"NGOÀI PHẠM VI:[^\n]*", re.IGNORECASE),
    re.compile(r"ROUTES:[^\n]*", re.IGNORECASE),
    re.compile(r"/no_think", re.IGNORECASE),
]
_EXTERNAL_URL = re.compile(r"https?://(?!localhost|127\.0\.0\.1)[^\s<>)]+", re.IGNORECASE)


def sanitize_model_output(text: str, max_length: int = 2000) -> str:
    """Final cleanup of model text before it is shown.

    Removes leaked system-prompt lines and external URLs, runs the display
    cleanup, and truncates to max_length with a trailing ellipsis.
    """
    if not text:
        return ""

    result = clean_response_for_display(text)
    for pattern in _LEAK_PATTERNS:
        result = pattern.sub("", result)
    result = _EXTERNAL_URL.sub("", result)

    if len(result) > max_length:
        result = result[:max_length] + "..."

    result = re.sub(r"\n{3,}", "\n\n", result)
    result = re.sub(r"[ \t]{2,}", " ", result)
    return result.strip()


_TERMINAL_PUNCTUATION = (".", "!", "?", "…", ":", ")", "*", "`")


def finalize_text(text: str) -> str:
    """Trim, capitalize the first letter and ensure terminal punctuation."""
    result = (text or "").strip()
    if not result:
        return ""
    if result[0].isalpha() and result[0].islower():
        result = result[0].upper() + result[1:]
    last_line = result.splitlines()[-1].lstrip()
    is_list_item = last_line.startswith(("•", "-", "*")) or bool(re.match(r"\d+\.", last_line))
    if not result.endswith(_TERMINAL_PUNCTUATION) and not is_list_item:
        result += "."
    return result


def truncate_for_history(text: str, max_chars: int) -> str:
    """Cut text to max_chars, preferring a word boundary."""
    if not text or len(text) <= max_chars:
        return text
    truncated = text[:max_chars]
    last_space = truncated.rfind(" ")
    if last_space > max_chars * 0.7:
        return truncated[:last_space] + "..."
    return truncated + "..."


def estimate_tokens(text: str, chars_per_token: float = 4.0) -> int:
    """Rough token estimate; accented Vietnamese costs extra."""
    if not text:
        return 0
    accented = len(VIETNAMESE_LETTERS.findall(text))
    return math.ceil(len(text) / chars_per_token) + math.ceil(accented * 0.3) + 4
