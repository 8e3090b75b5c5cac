"""
Slack user mention helpers shared by features.
"""

import re

MENTION_RE = re.compile(r"<@([A-Z0-9]+)(?:\|[^>]*)?>")


def mention(user_id: str) -> str:
    return f"<@{user_id}>"


def target_user_id(text: str, author_id: str) -> str:
    """First mentioned user in the text, else the author."""
    match = MENTION_RE.search(text or "")
    return match.group(1) if match else author_id


def strip_mentions(text: str) -> str:
    return MENTION_RE.sub("", text or "").strip()
