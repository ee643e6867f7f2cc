"""Recognition of comments authored by the CLA bot.

GitHub has no notion of a comment owned by an app for a purpose, so every
comment the bot writes carries a hidden marker. Only marked comments are ever
updated or deleted.
"""

from typing import Iterable, Optional

from clabot_api.github.types import IssueComment

COMMENT_MARKER = "<!-- clabot:cla-status -->"


def with_marker(body: str) -> str:
    return f"{COMMENT_MARKER}\n{body}"


def is_managed_comment(body: Optional[str]) -> bool:
    return bool(body) and COMMENT_MARKER in body


def find_latest_managed_comment(comments: Iterable[IssueComment]) -> Optional[IssueComment]:
    """Return the newest marker-bearing comment, or None."""
    latest = None
    for comment in comments:
        if is_managed_comment(comment.body):
            latest = comment
    return latest
