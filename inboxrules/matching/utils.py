"""Helpers for turning messages into prompt text."""

import re
from dataclasses import dataclass

from ..errors import safe_truncate
from ..models import Message

_BLANK_LINES = re.compile(r"\n\s*\n+")


@dataclass
class EmailForPrompt:
    """The parts of a message the AI gets to see."""

    from_: str
    subject: str
    content: str
    reply_to: str | None = None
    cc: str | None = None

    def to_prompt(self) -> str:
        lines = [f"From: {self.from_}"]
        if self.reply_to:
            lines.append(f"Reply-To: {self.reply_to}")
        if self.cc:
            lines.append(f"CC: {self.cc}")
        lines.append(f"Subject: {self.subject}")
        lines.append(f"Body:\n{self.content}")
        return "\n".join(lines)


def sanitize_for_prompt(text: str | None, max_length: int = 500) -> str:
    """Strip control characters and cap length of untrusted text."""
    if not text:
        return ""
    sanitized = "".join(c for c in text if ord(c) >= 32 or c in "\n\t")
    return safe_truncate(sanitized, max_length)


def get_email_from_message(message: Message, max_body_chars: int = 2000) -> EmailForPrompt:
    """Build the prompt view of a message, falling back to the snippet for the body."""
    body = message.text_plain or message.snippet or ""
    body = _BLANK_LINES.sub("\n\n", body).strip()
    return EmailForPrompt(
        from_=sanitize_for_prompt(message.from_),
        reply_to=sanitize_for_prompt(message.reply_to) or None,
        cc=sanitize_for_prompt(message.cc) or None,
        subject=sanitize_for_prompt(message.subject),
        content=sanitize_for_prompt(body, max_body_chars),
    )
