from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Organization:
    """Tenant boundary.

    Deactivated (``is_active=False``) rather than deleted once audit
    history exists; ledger reads ignore this flag.
    """

    id: UUID
    name: str
    slug: str
    is_active: bool = True
    max_users: int = 25
    max_courses: int = 10
    max_storage_mb: int = 5120
    features: frozenset[str] = field(
        default_factory=lambda: frozenset({"ai_content_generation"})
    )

    @staticmethod
    def new(
        *,
        name: str,
        slug: str,
        max_users: int = 25,
        max_courses: int = 10,
        features: frozenset[str] | None = None,
    ) -> Organization:
        if max_users < 0 or max_courses < 0:
            raise ValueError("quotas must be non-negative")
        return Organization(
            id=uuid4(),
            name=name,
            slug=slug,
            max_users=max_users,
            max_courses=max_courses,
            features=(
                features
                if features is not None
                else frozenset({"ai_content_generation"})
            ),
        )

    def has_feature(self, feature: str) -> bool:
        return feature in self.features
