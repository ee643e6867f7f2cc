"""Bypass list identities.

Users are identified by their immutable numeric GitHub id. Apps and bots are
identified by a normalized slug, because GitHub shows the same automation
account as ``name`` in some payloads and ``name[bot]`` in others.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union

BOT_SUFFIX = "[bot]"


class BypassKind(str, Enum):
    USER = "user"
    APP_BOT = "app_bot"


@dataclass(frozen=True)
class UserBypass:
    github_user_id: int
    login: str

    kind: ClassVar[BypassKind] = BypassKind.USER

    @property
    def subject_key(self) -> str:
        return str(self.github_user_id)


@dataclass(frozen=True)
class AppBotBypass:
    slug: str

    kind: ClassVar[BypassKind] = BypassKind.APP_BOT

    @property
    def subject_key(self) -> str:
        return self.slug

    @property
    def login(self) -> str:
        return format_actor_login(self.slug)


BypassEntry = Union[UserBypass, AppBotBypass]


def parse_bypass_kind(value) -> Optional[BypassKind]:
    """Parse a kind string, returning None for anything unrecognized."""
    try:
        return BypassKind(value)
    except ValueError:
        return None


def normalize_login(value: str) -> str:
    return value.strip().lstrip("@").lower()


def normalize_actor_slug(value: str) -> str:
    normalized = normalize_login(value)
    if normalized.endswith(BOT_SUFFIX):
        return normalized[: -len(BOT_SUFFIX)]
    return normalized


def format_actor_login(slug: str) -> str:
    normalized = normalize_actor_slug(slug)
    if not normalized:
        return ""
    return f"{normalized}{BOT_SUFFIX}"


def actor_login_candidates(value: str) -> list[str]:
    """Both spellings of an automation identity: ``name`` and ``name[bot]``."""
    slug = normalize_actor_slug(value)
    if not slug:
        return []
    return [slug, format_actor_login(slug)]


def is_likely_app_bot(login: str, account_type: Optional[str] = None) -> bool:
    normalized = login.lower()
    if account_type == "Bot":
        return True
    return normalized.endswith(BOT_SUFFIX) or "dependabot" in normalized


def build_entry(kind: BypassKind, login: str, github_user_id: Optional[int] = None) -> BypassEntry:
    """Build an entry from admin input, validating the fields each kind needs."""
    if kind is BypassKind.USER:
        if github_user_id is None:
            raise ValueError("github_user_id is required for user bypass entries")
        return UserBypass(github_user_id=int(github_user_id), login=normalize_login(login))
    slug = normalize_actor_slug(login)
    if not slug:
        raise ValueError("login is required for app/bot bypass entries")
    return AppBotBypass(slug=slug)


def entry_from_row(row) -> BypassEntry:
    """Convert a ``BypassAccount`` row into its tagged entry."""
    if row.kind == BypassKind.USER.value:
        return UserBypass(github_user_id=int(row.subject_key), login=row.github_login)
    return AppBotBypass(slug=row.subject_key)
