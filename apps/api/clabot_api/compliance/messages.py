"""Contributor-facing check-run output and PR comment bodies.

The check run and the bot comment are the only error surface a contributor
sees, so every outcome maps to readable text here.
"""

from urllib.parse import quote

from clabot_api.compliance.resolver import (
    Compliant,
    ConfigRequired,
    Exempt,
    NeedsResign,
    NeverSigned,
    Outcome,
)
from clabot_api.cla.digest import short_label
from clabot_api.github.comments import with_marker

FOOTER = (
    "<sub>[CLA Bot]({base_url}) automates Contributor License Agreements for GitHub. "
    "Comment `/recheck` to re-run this check.</sub>"
)

_EXEMPT_OUTPUT = {
    "inactive": (
        "CLA: Check skipped",
        "The CLA bot is inactive for @{org}. This pull request is not blocked by CLA requirements.",
    ),
    "membership": (
        "CLA: Org member",
        "@{author} is a member or owner of @{org}. No CLA signature required.",
    ),
    "bypass": (
        "CLA: Bypassed",
        "@{author} is on the CLA bypass list for @{org}.",
    ),
}


def conclusion_for(outcome: Outcome) -> str:
    return "success" if outcome.passing else "failure"


def check_output(outcome: Outcome, org_slug: str, author_login: str) -> tuple[str, str]:
    """Return ``(title, summary)`` for the check run."""
    if isinstance(outcome, Exempt):
        title, summary = _EXEMPT_OUTPUT[outcome.reason]
        return title, summary.format(org=org_slug, author=author_login)
    if isinstance(outcome, Compliant):
        return (
            "CLA: Signed",
            f"@{author_login} has signed the current CLA (version `{short_label(outcome.signed_digest)}`).",
        )
    if isinstance(outcome, NeedsResign):
        return (
            "CLA: Re-signing required",
            f"@{author_login} signed an older CLA (version `{outcome.signed_digest_label}`). "
            f"Please re-sign (version `{outcome.current_digest_label}`).",
        )
    if isinstance(outcome, NeverSigned):
        return (
            "CLA: Signature required",
            f"@{author_login} has not signed the CLA for {org_slug}. Please sign to continue.",
        )
    if isinstance(outcome, ConfigRequired):
        return (
            "CLA: Configuration required",
            f"@{org_slug} has not published a CLA yet. "
            "A maintainer must configure one before contributors can sign.",
        )
    raise TypeError(f"Unknown outcome {outcome!r}")


def merge_queue_output() -> tuple[str, str]:
    return (
        "CLA: Merge queue",
        "CLA compliance is enforced on the originating pull requests.",
    )


def sign_url(base_url: str, org_slug: str) -> str:
    return (
        f"{base_url.rstrip('/')}/sign/{quote(org_slug)}"
        "?utm_source=github&utm_medium=pr_comment&utm_campaign=cla_bot"
    )


def render_comment(
    outcome: Outcome, org_name: str, org_slug: str, author_login: str, base_url: str
) -> str:
    """Markdown body for the bot comment on a failing pull request."""
    footer = FOOTER.format(base_url=base_url.rstrip("/"))

    if isinstance(outcome, ConfigRequired):
        admin_url = f"{base_url.rstrip('/')}/admin/{quote(org_slug)}"
        body = (
            "### CLA not published yet\n\n"
            f"Hey @{author_login}, thanks for contributing to **{org_name}**.\n\n"
            "This repository has not published a Contributor License Agreement yet, so signatures "
            "cannot be validated for external contributors at this time. "
            "There is nothing for you to sign right now.\n\n"
            f"A maintainer must publish the CLA first: {admin_url}\n\n"
            f"{footer}\n"
        )
        return with_marker(body)

    if isinstance(outcome, NeedsResign):
        header = "### CLA Re-signing Required"
        greeting = (
            f"Hey @{author_login}, thanks for continuing to contribute to **{org_name}**! "
            f"The Contributor License Agreement has been updated (version `{outcome.current_digest_label}`) "
            "since you last signed. Before we can accept this contribution, please review and "
            "re-sign the updated agreement."
        )
    elif isinstance(outcome, NeverSigned):
        header = "### Contributor License Agreement Required"
        greeting = (
            f"Hey @{author_login}, thank you for your contribution to **{org_name}**! "
            "Before we can accept your changes, we need you to sign our Contributor License "
            f"Agreement (version `{outcome.current_digest_label}`). This is a one-time process "
            "that protects both you and the project."
        )
    else:
        raise TypeError(f"No comment for passing outcome {outcome!r}")

    body = (
        f"{header}\n\n"
        f"{greeting}\n\n"
        f"**[Sign the CLA]({sign_url(base_url, org_slug)})**\n\n"
        "Once you've signed, the status check on this PR will update automatically.\n\n"
        "---\n\n"
        f"{footer}\n"
    )
    return with_marker(body)
