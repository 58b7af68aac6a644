"""
User identities for User-scope evaluation.

The identity provider is consulted once per run; the filtered, ordered
result travels in an EvaluationContext handed to every User-scope
evaluation. An empty identity list means User scope is skipped; there is
no fallback to the current user's hive.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Traditional domain/local accounts and Entra ID (cloud) accounts
DOMAIN_SID_PATTERN = re.compile(r"^S-1-5-21-\d+-\d+-\d+-\d+$", re.IGNORECASE)
CLOUD_SID_PATTERN = re.compile(r"^S-1-12-1-\d+-\d+-\d+-\d+$", re.IGNORECASE)

IdentityProvider = Callable[[], Iterable[str]]


def is_user_identity(sid: str) -> bool:
    """True for identities that own a loadable per-user hive."""
    sid = sid.strip()
    return bool(DOMAIN_SID_PATTERN.match(sid) or CLOUD_SID_PATTERN.match(sid))


def filter_identities(candidates: Iterable[str]) -> List[str]:
    """Keep user identities only, in order, without duplicates."""
    seen = set()
    result = []
    for raw in candidates:
        sid = str(raw).strip()
        if not is_user_identity(sid):
            logger.debug(f"Ignoring non-user identity: {sid}")
            continue
        key = sid.upper()
        if key in seen:
            continue
        seen.add(key)
        result.append(sid)
    return result


def static_provider(identities: Iterable[str]) -> IdentityProvider:
    """Provider returning a fixed identity list (from configuration)."""
    frozen = list(identities)
    return lambda: list(frozen)


@dataclass(frozen=True)
class EvaluationContext:
    """Run-wide, read-only inputs shared by every evaluation."""
    remediate: bool = False
    user_identities: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_users(self) -> bool:
        return bool(self.user_identities)

    @classmethod
    def create(
        cls,
        remediate: bool = False,
        provider: Optional[IdentityProvider] = None,
    ) -> "EvaluationContext":
        """
        Build the context, resolving user identities exactly once.

        Provider failures are logged and leave the identity list empty.
        """
        identities: List[str] = []
        if provider is not None:
            try:
                identities = filter_identities(provider())
            except Exception as e:
                logger.error(f"User identity enumeration failed: {e}")
                identities = []

        logger.info(f"Resolved {len(identities)} user identities")
        return cls(remediate=remediate, user_identities=tuple(identities))
