"""Permission engine: the single authorization authority.

``authorize(principal, action, resource_org_id, policy)`` is a pure, total
function.  It does no I/O, never raises, and is consulted before any
storage access for a request.  Rules are evaluated in order and the first
match wins:

  1. system owner                      -> Allow
  2. principal org != resource org     -> Deny(CrossTenantAccess)
  3. tier known, action in tier's set  -> Allow
     tier known, action not in set     -> Deny(InsufficientTier)
  4. anything else                     -> Deny(NoMatchingPolicy)

The tier -> action table is an immutable ``PolicyTable`` value passed in
explicitly.  ``DEFAULT_POLICY`` is built once at import; a deployment that
needs different grants derives a new table with ``with_grants`` and a new
version string instead of mutating the default.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from uuid import UUID

from app.core.errors import AuthorizationDenied
from app.core.metrics import AUTHZ_DECISIONS
from app.models.principal import (
    FACILITATOR,
    STUDENT,
    SUBSCRIBER_ADMIN,
    TEACHER,
    Principal,
)

logger = logging.getLogger(__name__)

# --- Reason codes ---

ALLOWED = "Allowed"
SYSTEM_OWNER_BYPASS = "SystemOwner"
CROSS_TENANT_ACCESS = "CrossTenantAccess"
INSUFFICIENT_TIER = "InsufficientTier"
NO_MATCHING_POLICY = "NoMatchingPolicy"

# --- Actions ---

MANAGE_USERS = "manage-users"
MANAGE_COURSES = "manage-courses"
VIEW_ORG_ANALYTICS = "view-org-analytics"
VIEW_ENROLLMENTS = "view-enrollments"
ENROLL_OTHERS = "enroll-others"
EDIT_OWN_COURSE_CONTENT = "edit-own-course-content"
GRADE = "grade"
MODERATE_DISCUSSION = "moderate-discussion"
ENROLL_SELF = "enroll-self"
VIEW_PUBLISHED_CONTENT = "view-published-content"
RECORD_PROGRESS = "record-progress"
COMPLETE_ENROLLMENT = "complete-enrollment"
VIEW_AUDIT_LOG = "view-audit-log"
REVOKE_CERTIFICATE = "revoke-certificate"
CORRECT_LEDGER = "correct-ledger"

# Raised by services on top of an Allow: a student acting on someone
# else's enrollment.
NOT_OWNER = "NotEnrollmentOwner"

ACTIONS = frozenset(
    {
        MANAGE_USERS,
        MANAGE_COURSES,
        VIEW_ORG_ANALYTICS,
        VIEW_ENROLLMENTS,
        ENROLL_OTHERS,
        EDIT_OWN_COURSE_CONTENT,
        GRADE,
        MODERATE_DISCUSSION,
        ENROLL_SELF,
        VIEW_PUBLISHED_CONTENT,
        RECORD_PROGRESS,
        COMPLETE_ENROLLMENT,
        VIEW_AUDIT_LOG,
        REVOKE_CERTIFICATE,
        CORRECT_LEDGER,
    }
)


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    reason: str
    policy_version: str

    def __bool__(self) -> bool:
        return self.allowed


@dataclass(frozen=True, slots=True)
class PolicyTable:
    version: str
    grants: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @staticmethod
    def build(version: str, grants: Mapping[str, set[str] | frozenset[str]]) -> PolicyTable:
        unknown = {a for actions in grants.values() for a in actions} - ACTIONS
        if unknown:
            raise ValueError(f"unknown actions in policy: {sorted(unknown)}")
        frozen = {tier: frozenset(actions) for tier, actions in grants.items()}
        return PolicyTable(version=version, grants=MappingProxyType(frozen))

    def actions_for(self, tier: str) -> frozenset[str] | None:
        return self.grants.get(tier)

    def with_grants(
        self, version: str, tier: str, actions: set[str] | frozenset[str]
    ) -> PolicyTable:
        """Return a new table with ``actions`` added to ``tier``."""
        merged = dict(self.grants)
        merged[tier] = merged.get(tier, frozenset()) | frozenset(actions)
        return PolicyTable.build(version, merged)


_STAFF_ACTIONS = frozenset(
    {
        EDIT_OWN_COURSE_CONTENT,
        GRADE,
        MODERATE_DISCUSSION,
        VIEW_ENROLLMENTS,
        ENROLL_OTHERS,
        RECORD_PROGRESS,
        COMPLETE_ENROLLMENT,
        VIEW_PUBLISHED_CONTENT,
    }
)

DEFAULT_POLICY = PolicyTable.build(
    "2024.1",
    {
        SUBSCRIBER_ADMIN: {
            MANAGE_USERS,
            MANAGE_COURSES,
            VIEW_ORG_ANALYTICS,
            VIEW_ENROLLMENTS,
            ENROLL_OTHERS,
            VIEW_AUDIT_LOG,
            REVOKE_CERTIFICATE,
            CORRECT_LEDGER,
            GRADE,
            RECORD_PROGRESS,
            COMPLETE_ENROLLMENT,
            VIEW_PUBLISHED_CONTENT,
        },
        TEACHER: _STAFF_ACTIONS,
        FACILITATOR: _STAFF_ACTIONS,
        STUDENT: {
            ENROLL_SELF,
            VIEW_PUBLISHED_CONTENT,
            RECORD_PROGRESS,
            COMPLETE_ENROLLMENT,
        },
    },
)


def authorize(
    principal: Principal,
    action: str,
    resource_org_id: UUID | None,
    policy: PolicyTable = DEFAULT_POLICY,
) -> Decision:
    """Decide whether ``principal`` may perform ``action`` on a resource
    owned by ``resource_org_id``.

    ``principal`` only needs ``is_system_owner``, ``organization_id`` and
    ``tier`` attributes.  Malformed input yields a deny, never an exception.
    """
    version = getattr(policy, "version", "unknown")
    try:
        if getattr(principal, "is_system_owner", False) is True:
            return Decision(True, SYSTEM_OWNER_BYPASS, version)

        org_id = getattr(principal, "organization_id", None)
        if org_id is None or org_id != resource_org_id:
            return Decision(False, CROSS_TENANT_ACCESS, version)

        actions = policy.actions_for(getattr(principal, "tier", None))
        if actions is not None:
            if action in actions:
                return Decision(True, ALLOWED, version)
            return Decision(False, INSUFFICIENT_TIER, version)
    except Exception:  # noqa: BLE001  malformed principal or policy is a deny
        pass
    return Decision(False, NO_MATCHING_POLICY, version)


def require(
    principal: Principal,
    action: str,
    resource_org_id: UUID | None,
    policy: PolicyTable = DEFAULT_POLICY,
) -> Decision:
    """``authorize`` for control flow: count the decision, raise on Deny."""
    decision = authorize(principal, action, resource_org_id, policy)
    AUTHZ_DECISIONS.labels(
        result="allow" if decision.allowed else "deny", reason=decision.reason
    ).inc()
    if not decision.allowed:
        logger.warning(
            "Denied %s: user=%s tier=%s org=%s target_org=%s policy=%s",
            action,
            getattr(principal, "user_id", None),
            getattr(principal, "tier", None),
            getattr(principal, "organization_id", None),
            resource_org_id,
            decision.policy_version,
            extra={"action": action, "reason": decision.reason},
        )
        raise AuthorizationDenied(decision.reason, f"{action} denied: {decision.reason}")
    return decision
