"""Enrollment state machine.

    enrolled -> in_progress -> completed | failed | dropped
    any non-terminal <-> suspended (resumes to the state it left)

Every write to ``status``, ``progress`` or ``completed_at`` goes through
``_apply``, which re-reads the row, runs a pure transition function on it
and persists the result with the repo's ``compare_and_set``.  A lost race
re-reads and re-applies, so a transition's guard is always checked
against the row it actually replaces.

Each public method follows the same order: load the target through the
tenant guard, ``require`` the action for the target's organization, check
ownership where a student acts, then transition.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID

from app.core.errors import (
    AlreadyEnrolled,
    AssessmentNotPassed,
    AuthorizationDenied,
    ConcurrentUpdate,
    CrossTenantWrite,
    DuplicateCertificate,
    EnrollmentClosed,
    EnrollmentFull,
    InvalidProgress,
    InvalidTransition,
    NotFound,
    SelfEnrollmentNotAllowed,
)
from app.core.metrics import ENROLLMENT_TRANSITIONS
from app.models.compliance import (
    CERT_ACTIVE,
    COMPLETION,
    ENROLLMENT,
    VERIFIED,
    AuditEntry,
    Certificate,
)
from app.models.course import Course
from app.models.enrollment import (
    ARCHIVED,
    COMPLETED,
    DROPPED,
    ENROLLED,
    FAILED,
    IN_PROGRESS,
    SUSPENDED,
    Enrollment,
)
from app.models.principal import Principal
from app.repos.enrollment_repo import CapacityReached, DuplicateEnrollment
from app.repos.registry import Repositories
from app.services.certificate_renderer import CertificateRenderer
from app.services.cpe import calculate_cpe_credits
from app.services.ledger import ComplianceLedger, epoch_now
from app.services.permissions import (
    COMPLETE_ENROLLMENT,
    DEFAULT_POLICY,
    ENROLL_OTHERS,
    ENROLL_SELF,
    GRADE,
    INSUFFICIENT_TIER,
    MANAGE_COURSES,
    NOT_OWNER,
    RECORD_PROGRESS,
    VIEW_ENROLLMENTS,
    PolicyTable,
    require,
)
from app.services.tenant_scope import TenantScopingGuard

logger = logging.getLogger(__name__)

_CAS_ATTEMPTS = 5
DEFAULT_MAX_MINUTES_PER_REPORT = 240
_ENROLLMENT_TYPES = frozenset({"self", "admin", "bulk"})


@dataclass(frozen=True, slots=True)
class CompletionResult:
    enrollment: Enrollment
    audit_entry: AuditEntry | None
    certificate: Certificate | None
    already_completed: bool = False


class EnrollmentService:
    def __init__(
        self,
        repos: Repositories,
        ledger: ComplianceLedger,
        *,
        policy: PolicyTable = DEFAULT_POLICY,
        renderer: CertificateRenderer | None = None,
        clock: Callable[[], int] = epoch_now,
        max_minutes_per_report: int = DEFAULT_MAX_MINUTES_PER_REPORT,
    ) -> None:
        self._repos = repos
        self._ledger = ledger
        self._policy = policy
        self._renderer = renderer
        self._clock = clock
        self._max_minutes = max_minutes_per_report

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, principal: Principal, enrollment_id: UUID) -> Enrollment:
        enrollment = await TenantScopingGuard(principal, self._repos).enrollment(
            enrollment_id
        )
        if enrollment.student_id != principal.user_id:
            require(principal, VIEW_ENROLLMENTS, enrollment.organization_id, self._policy)
        return enrollment

    async def list_enrollments(
        self, principal: Principal, *, include_archived: bool = False
    ) -> list[Enrollment]:
        """Staff see their organization's enrollments, students their own."""
        guard = TenantScopingGuard(principal, self._repos)
        rows = await guard.enrollments(include_archived=include_archived)
        if principal.is_staff():
            require(principal, VIEW_ENROLLMENTS, principal.organization_id, self._policy)
            return rows
        return [e for e in rows if e.student_id == principal.user_id]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def enroll(
        self,
        principal: Principal,
        course_id: UUID,
        *,
        student_id: UUID | None = None,
        enrollment_type: str | None = None,
    ) -> Enrollment:
        guard = TenantScopingGuard(principal, self._repos)
        course = await guard.course(course_id)

        target_id = student_id or principal.user_id
        self_serve = target_id == principal.user_id
        require(
            principal,
            ENROLL_SELF if self_serve else ENROLL_OTHERS,
            course.organization_id,
            self._policy,
        )
        guard.check_enrollment_write(course)

        if self_serve and not (course.allow_self_enrollment and course.requires_enrollment):
            raise SelfEnrollmentNotAllowed(
                f"course {course.id} does not accept self-enrollment"
            )

        enrollment_type = enrollment_type or ("self" if self_serve else "admin")
        if enrollment_type not in _ENROLLMENT_TYPES:
            raise InvalidTransition(f"unknown enrollment type {enrollment_type!r}")

        student = await self._repos.users.get_by_id(target_id)
        if student is None:
            raise NotFound("student not found")
        if student.organization_id != course.organization_id:
            raise CrossTenantWrite("student belongs to a different organization")

        now = self._clock()
        await self._check_open(course, now)
        if await self._repos.enrollments.get_for(target_id, course.id) is not None:
            raise AlreadyEnrolled(f"user {target_id} is already enrolled in {course.id}")

        enrollment = Enrollment.new(
            student_id=target_id,
            course_id=course.id,
            organization_id=course.organization_id,
            enrolled_at=now,
            enrolled_by=None if self_serve else principal.user_id,
            enrollment_type=enrollment_type,
        )
        try:
            await self._repos.enrollments.add(enrollment, max_students=course.max_students)
        except DuplicateEnrollment:
            raise AlreadyEnrolled(
                f"user {target_id} is already enrolled in {course.id}"
            ) from None
        except CapacityReached:
            raise EnrollmentFull(f"course {course.id} has no seats left") from None

        ENROLLMENT_TRANSITIONS.labels(transition="enroll").inc()
        logger.info(
            "Enrolled user=%s course=%s type=%s",
            target_id,
            course.id,
            enrollment_type,
            extra={"enrollment_id": enrollment.id},
        )
        await self._ledger.record_after_commit(
            AuditEntry.new(
                user_id=target_id,
                class_id=course.id,
                organization_id=course.organization_id,
                action=ENROLLMENT,
                created_at=now,
                verification_status=VERIFIED,
                enrollment_id=enrollment.id,
                recorded_by=principal.user_id,
            )
        )
        return enrollment

    async def record_progress(
        self,
        principal: Principal,
        enrollment_id: UUID,
        *,
        completed_items: int,
        total_required_items: int | None = None,
        minutes_spent: int = 0,
    ) -> Enrollment:
        """Raise progress to ``completed_items / total``; never lower it.

        The total is the course's ``total_required_items``.  Staff may raise
        it for one report, never lower it; students cannot override it.
        Reported minutes are capped per report, and the enrollment's total
        time may not run ahead of the wall clock since enrollment by more
        than one report's allowance.
        """
        if completed_items < 0 or minutes_spent < 0:
            raise InvalidProgress("completed_items and minutes_spent must be non-negative")
        if minutes_spent > self._max_minutes:
            raise InvalidProgress(
                f"minutes_spent may not exceed {self._max_minutes} per report"
            )
        if total_required_items is not None and total_required_items < 0:
            raise InvalidProgress("total_required_items must be non-negative")

        enrollment, course = await self._load(principal, enrollment_id, RECORD_PROGRESS)
        total = course.total_required_items
        if total_required_items is not None:
            if not principal.is_staff():
                raise AuthorizationDenied(
                    INSUFFICIENT_TIER, "only staff may override the required item count"
                )
            total = max(total, total_required_items)
        reported = 100 if total == 0 else min(100, completed_items * 100 // total)
        now = self._clock()

        def advance(current: Enrollment) -> Enrollment:
            if current.status not in (ENROLLED, IN_PROGRESS):
                raise InvalidTransition(f"cannot record progress while {current.status}")
            elapsed = max(0, now - current.enrolled_at) // 60
            if current.time_spent + minutes_spent > elapsed + self._max_minutes:
                raise InvalidProgress(
                    f"reported time exceeds the time elapsed since enrollment "
                    f"({elapsed} minutes)"
                )
            return replace(
                current,
                status=IN_PROGRESS,
                progress=max(current.progress, reported),
                time_spent=current.time_spent + minutes_spent,
                last_accessed_at=now,
            )

        updated, _ = await self._apply(enrollment.id, advance, "progress")
        return updated

    async def record_assessment(
        self, principal: Principal, enrollment_id: UUID, score: Decimal
    ) -> Enrollment:
        score = Decimal(score)
        if not Decimal(0) <= score <= Decimal(100):
            raise InvalidProgress("score must be between 0 and 100")
        enrollment, course = await self._load(principal, enrollment_id, GRADE)
        limit = course.max_assessment_attempts

        def grade(current: Enrollment) -> Enrollment:
            if current.status not in (ENROLLED, IN_PROGRESS):
                raise InvalidTransition(f"cannot record an assessment while {current.status}")
            if limit is not None and current.attempts >= limit:
                raise InvalidTransition("no assessment attempts remaining")
            return replace(
                current,
                status=IN_PROGRESS,
                overall_score=score,
                attempts=current.attempts + 1,
            )

        updated, _ = await self._apply(enrollment.id, grade, "assessment")
        return updated

    async def complete(
        self, principal: Principal, enrollment_id: UUID
    ) -> CompletionResult:
        """Complete once; repeat calls return the original completion."""
        enrollment, course = await self._load(
            principal, enrollment_id, COMPLETE_ENROLLMENT
        )
        if enrollment.status == COMPLETED:
            return await self._existing_completion(enrollment, course, principal)

        now = self._clock()

        def finish(current: Enrollment) -> Enrollment:
            if current.status == COMPLETED:
                return current
            if current.status != IN_PROGRESS:
                raise InvalidTransition(f"cannot complete while {current.status}")
            if current.progress != 100:
                raise InvalidTransition(
                    f"progress is {current.progress}, completion requires 100"
                )
            if course.requires_assessment and (
                current.overall_score is None
                or current.overall_score < course.minimum_passing_score
            ):
                raise AssessmentNotPassed(
                    f"score {current.overall_score} is below the passing score "
                    f"{course.minimum_passing_score}"
                )
            return replace(current, status=COMPLETED, completed_at=now)

        updated, changed = await self._apply(enrollment.id, finish, "complete")
        if not changed:
            return await self._existing_completion(updated, course, principal)

        credits = _completion_credits(updated, course)
        entry = await self._ledger.record_after_commit(
            AuditEntry.new(
                user_id=updated.student_id,
                class_id=course.id,
                organization_id=updated.organization_id,
                action=COMPLETION,
                created_at=now,
                cpe_credits_earned=credits,
                completion_date=updated.completed_at,
                assessment_score=updated.overall_score,
                time_spent_minutes=updated.time_spent,
                verification_status=VERIFIED,
                enrollment_id=updated.id,
                recorded_by=principal.user_id,
            )
        )

        certificate = None
        if course.generate_certificate:
            certificate = await self._issue(updated, course, credits, principal)
        return CompletionResult(updated, entry, certificate)

    async def fail(self, principal: Principal, enrollment_id: UUID) -> Enrollment:
        enrollment, course = await self._load(principal, enrollment_id, GRADE)
        limit = course.max_assessment_attempts

        def close_out(current: Enrollment) -> Enrollment:
            if current.status not in (ENROLLED, IN_PROGRESS):
                raise InvalidTransition(f"cannot fail while {current.status}")
            exhausted = limit is not None and current.attempts >= limit
            below = (
                current.overall_score is None
                or current.overall_score < course.minimum_passing_score
            )
            if not (exhausted and below):
                raise InvalidTransition("assessment attempts are not exhausted below passing")
            return replace(current, status=FAILED)

        updated, _ = await self._apply(enrollment.id, close_out, "fail")
        return updated

    async def drop(self, principal: Principal, enrollment_id: UUID) -> Enrollment:
        enrollment, _ = await self._load(principal, enrollment_id, COMPLETE_ENROLLMENT)

        def withdraw(current: Enrollment) -> Enrollment:
            if current.is_terminal:
                raise InvalidTransition(f"cannot drop while {current.status}")
            return replace(current, status=DROPPED, suspended_from=None)

        updated, _ = await self._apply(enrollment.id, withdraw, "drop")
        return updated

    async def suspend(self, principal: Principal, enrollment_id: UUID) -> Enrollment:
        enrollment, _ = await self._load(principal, enrollment_id, ENROLL_OTHERS)

        def hold(current: Enrollment) -> Enrollment:
            if current.is_terminal or current.status == SUSPENDED:
                raise InvalidTransition(f"cannot suspend while {current.status}")
            return replace(current, status=SUSPENDED, suspended_from=current.status)

        updated, _ = await self._apply(enrollment.id, hold, "suspend")
        return updated

    async def resume(self, principal: Principal, enrollment_id: UUID) -> Enrollment:
        enrollment, _ = await self._load(principal, enrollment_id, ENROLL_OTHERS)

        def release(current: Enrollment) -> Enrollment:
            if current.status != SUSPENDED or current.suspended_from is None:
                raise InvalidTransition(f"cannot resume while {current.status}")
            return replace(current, status=current.suspended_from, suspended_from=None)

        updated, _ = await self._apply(enrollment.id, release, "resume")
        return updated

    async def archive(self, principal: Principal, enrollment_id: UUID) -> Enrollment:
        """Soft-archive a finished enrollment.  Rows are never deleted."""
        enrollment, _ = await self._load(
            principal, enrollment_id, MANAGE_COURSES, allow_archived=True
        )

        def shelve(current: Enrollment) -> Enrollment:
            if current.is_archived:
                return current
            if not current.is_terminal:
                raise InvalidTransition("only finished enrollments can be archived")
            return replace(current, lifecycle=ARCHIVED)

        updated, _ = await self._apply(enrollment.id, shelve, "archive")
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(
        self,
        principal: Principal,
        enrollment_id: UUID,
        action: str,
        *,
        allow_archived: bool = False,
    ) -> tuple[Enrollment, Course]:
        enrollment = await TenantScopingGuard(principal, self._repos).enrollment(
            enrollment_id
        )
        require(principal, action, enrollment.organization_id, self._policy)
        if not principal.is_staff() and enrollment.student_id != principal.user_id:
            logger.warning(
                "User %s acted on enrollment %s owned by %s",
                principal.user_id,
                enrollment.id,
                enrollment.student_id,
                extra={"action": action, "reason": NOT_OWNER},
            )
            raise AuthorizationDenied(NOT_OWNER, "enrollment belongs to another user")
        if enrollment.is_archived and not allow_archived:
            raise InvalidTransition("enrollment is archived")
        course = await self._repos.courses.get_by_id(enrollment.course_id)
        if course is None:
            raise NotFound("course not found")
        return enrollment, course

    async def _check_open(self, course: Course, now: int) -> None:
        if not course.is_active:
            raise EnrollmentClosed(f"course {course.id} is not active")
        org = await self._repos.orgs.get_by_id(course.organization_id)
        if org is None or not org.is_active:
            raise EnrollmentClosed("organization is not active")
        if course.enrollment_deadline is not None and now > course.enrollment_deadline:
            raise EnrollmentClosed(f"enrollment for course {course.id} has closed")

    async def _apply(
        self,
        enrollment_id: UUID,
        transition: Callable[[Enrollment], Enrollment],
        name: str,
    ) -> tuple[Enrollment, bool]:
        """Conditionally persist ``transition(current)``.

        Returns the stored enrollment and whether this call changed it.  A
        transition that returns its input unchanged is a no-op.
        """
        for attempt in range(1, _CAS_ATTEMPTS + 1):
            current = await self._repos.enrollments.get(enrollment_id)
            if current is None:
                raise NotFound("enrollment not found")
            updated = transition(current)
            if updated is current:
                return current, False
            updated = replace(updated, version=current.version + 1)
            if await self._repos.enrollments.compare_and_set(
                updated, expected_version=current.version
            ):
                ENROLLMENT_TRANSITIONS.labels(transition=name).inc()
                logger.info(
                    "Enrollment %s %s: %s -> %s progress=%d",
                    enrollment_id,
                    name,
                    current.status,
                    updated.status,
                    updated.progress,
                    extra={"enrollment_id": enrollment_id},
                )
                return updated, True
            logger.debug(
                "Enrollment %s %s lost a race (attempt %d)", enrollment_id, name, attempt
            )
        raise ConcurrentUpdate(f"enrollment {enrollment_id} kept changing; retry later")

    async def _existing_completion(
        self, enrollment: Enrollment, course: Course, principal: Principal
    ) -> CompletionResult:
        """Return the recorded completion, issuing a certificate still owed.

        A certificate is owed when the course generates one and none was
        ever issued for this student and course, e.g. because the ledger
        was unavailable when the enrollment completed.
        """
        entries = await self._ledger.entries_for(enrollment.student_id, enrollment.course_id)
        entry = next(
            (
                e
                for e in entries
                if e.action == COMPLETION
                and e.enrollment_id == enrollment.id
                and e.compensates_entry_id is None
            ),
            None,
        )
        issued = await self._repos.certificates.list_for(
            enrollment.student_id, enrollment.course_id
        )
        certificate = next((c for c in issued if c.status == CERT_ACTIVE), None)
        if course.generate_certificate and not issued:
            credits = (
                entry.cpe_credits_earned
                if entry is not None
                else _completion_credits(enrollment, course)
            )
            logger.warning(
                "Issuing certificate owed to completed enrollment %s",
                enrollment.id,
                extra={"enrollment_id": enrollment.id},
            )
            certificate = await self._issue(enrollment, course, credits, principal)
        return CompletionResult(enrollment, entry, certificate, already_completed=True)

    async def _issue(
        self,
        enrollment: Enrollment,
        course: Course,
        credits: Decimal,
        principal: Principal,
    ) -> Certificate | None:
        try:
            certificate = await self._ledger.issue_certificate(
                enrollment.student_id,
                course.id,
                credits,
                organization_id=enrollment.organization_id,
                enrollment_id=enrollment.id,
                recorded_by=principal.user_id,
            )
        except DuplicateCertificate:
            return await self._repos.certificates.get_active_for(
                enrollment.student_id, course.id
            )

        if self._renderer is None:
            return certificate
        metadata = {
            "course_title": course.title,
            "verification_hash": certificate.verification_hash,
            "completed_at": enrollment.completed_at,
        }
        try:
            url = await self._renderer.render(certificate, metadata)
        except Exception:
            # The certificate is already durable; a missing URL can be rendered later.
            logger.exception(
                "Rendering certificate %s failed",
                certificate.certificate_number,
                extra={"certificate_number": certificate.certificate_number},
            )
            return certificate
        return await self._ledger.attach_storage_url(certificate.certificate_number, url)


def _completion_credits(enrollment: Enrollment, course: Course) -> Decimal:
    if not course.is_cpe_eligible:
        return Decimal("0.00")
    return calculate_cpe_credits(enrollment.time_spent)
