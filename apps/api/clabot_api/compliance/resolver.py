"""Compliance resolution.

``resolve`` is a pure function over facts gathered elsewhere. The order of the
checks matters: an inactive organization never blocks a merge, and members or
bypassed accounts pass even when no CLA has been published.
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from clabot_api.cla.digest import short_label


@dataclass(frozen=True)
class ActorFacts:
    """Relationship between the actor and the installation account."""

    is_account_owner: bool = False
    is_org_member: bool = False

    @property
    def has_membership(self) -> bool:
        return self.is_account_owner or self.is_org_member


@dataclass(frozen=True)
class Exempt:
    reason: str  # inactive, membership, bypass

    passing: ClassVar[bool] = True

    @property
    def decision(self) -> str:
        return f"exempt_{self.reason}"


@dataclass(frozen=True)
class Compliant:
    signed_digest: str

    passing: ClassVar[bool] = True
    decision: ClassVar[str] = "signed"


@dataclass(frozen=True)
class NeedsResign:
    signed_digest_label: str
    current_digest_label: str

    passing: ClassVar[bool] = False
    decision: ClassVar[str] = "resign_required"


@dataclass(frozen=True)
class NeverSigned:
    current_digest_label: str

    passing: ClassVar[bool] = False
    decision: ClassVar[str] = "signature_required"


@dataclass(frozen=True)
class ConfigRequired:
    passing: ClassVar[bool] = False
    decision: ClassVar[str] = "cla_unconfigured"


Outcome = Union[Exempt, Compliant, NeedsResign, NeverSigned, ConfigRequired]


def is_signature_current(signed_digest: Optional[str], current_digest: Optional[str]) -> bool:
    """A signature is current iff it was made on the live digest."""
    return bool(current_digest) and signed_digest == current_digest


def resolve(organization, facts: ActorFacts, bypassed: bool, signature) -> Outcome:
    """Map organization state, actor facts, bypass and signature to an outcome."""
    if not organization.is_active:
        return Exempt("inactive")
    if facts.has_membership:
        return Exempt("membership")
    if bypassed:
        return Exempt("bypass")

    current_digest = organization.cla_digest
    if not current_digest:
        return ConfigRequired()
    if signature is None:
        return NeverSigned(short_label(current_digest))
    if not is_signature_current(signature.signed_digest, current_digest):
        return NeedsResign(short_label(signature.signed_digest), short_label(current_digest))
    return Compliant(signature.signed_digest)
