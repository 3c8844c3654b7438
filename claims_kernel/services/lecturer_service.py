"""
Service layer for the lecturer and account directory.

Serves the hourly-rate lookup that claim submission depends on, and the
HR operations that change rates.  Rate changes never touch existing
claims: a claim's amount is fixed when it is submitted.

Returns UserAccountInfo / LecturerInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from sqlalchemy import or_, select

from claims_kernel.db.types import round_money, to_decimal
from claims_kernel.domain.actor import Actor, Role
from claims_kernel.domain.dtos import LecturerInfo, UserAccountInfo
from claims_kernel.exceptions import InvalidHourlyRateError, LecturerNotFoundError
from claims_kernel.logging_config import get_logger
from claims_kernel.models.people import Lecturer, UserAccount
from claims_kernel.services.base import BaseService

logger = get_logger("services.lecturer")


class RateUpdateMode(str, Enum):
    """How bulk_update_hourly_rates interprets its value."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"


def _valid_rate(value: Decimal | int | str) -> Decimal:
    try:
        rate = round_money(to_decimal(value))
    except ValueError as exc:
        raise InvalidHourlyRateError(str(value)) from exc
    if rate < 0:
        raise InvalidHourlyRateError(str(value))
    return rate


class LecturerService(BaseService):
    """
    Directory of accounts and lecturers.

    Contract:
        ``get_hourly_rate()`` is the only rate lookup ClaimService uses.
        HR-only operations check the actor's role before reading anything.
    """

    def _get_by_id(self, lecturer_id: int) -> Lecturer:
        lecturer = self.session.get(Lecturer, lecturer_id)
        if lecturer is None:
            raise LecturerNotFoundError(lecturer_id)
        return lecturer

    def _get_by_user(self, user_id: str) -> Lecturer:
        stmt = select(Lecturer).where(Lecturer.user_id == user_id)
        lecturer = self.session.execute(stmt).scalar_one_or_none()
        if lecturer is None:
            raise LecturerNotFoundError(user_id)
        return lecturer

    def _find_account(self, user_id: str) -> UserAccount | None:
        stmt = select(UserAccount).where(UserAccount.user_id == user_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def register_user(
        self,
        user_id: str,
        full_name: str,
        role: Role,
        department: str | None = None,
    ) -> UserAccountInfo:
        """
        Create the profile record for an authenticated account.

        An account that already exists is returned unchanged; identity and
        role assignment belong to the identity provider, not to this
        service.
        """
        existing = self._find_account(user_id)
        if existing is not None:
            return UserAccountInfo.from_model(existing)

        account = UserAccount(
            user_id=user_id,
            full_name=full_name,
            role=Role(role),
            department=department,
            is_active=True,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "user_registered",
            extra={"user_id": user_id, "role": Role(role).value},
        )
        return UserAccountInfo.from_model(account)

    def register_lecturer(
        self,
        user_id: str,
        name: str,
        department: str,
        hourly_rate: Decimal | int | str,
    ) -> LecturerInfo:
        """
        Create a lecturer profile (and its Lecturer account when missing).

        Raises:
            InvalidHourlyRateError: Rate is negative or not a number.
        """
        rate = _valid_rate(hourly_rate)
        self.register_user(user_id, name, Role.LECTURER, department)

        lecturer = Lecturer(
            user_id=user_id,
            name=name,
            department=department,
            hourly_rate=rate,
        )
        self.session.add(lecturer)
        self.session.flush()

        logger.info(
            "lecturer_registered",
            extra={
                "lecturer_id": lecturer.id,
                "department": department,
                "hourly_rate": rate,
            },
        )
        return LecturerInfo.from_model(lecturer)

    def get_hourly_rate(self, lecturer_id: int) -> Decimal:
        """
        Current hourly rate of a lecturer.

        Raises:
            LecturerNotFoundError: No lecturer with this id.
        """
        return self._get_by_id(lecturer_id).hourly_rate

    def get_lecturer(self, lecturer_id: int) -> LecturerInfo:
        return LecturerInfo.from_model(self._get_by_id(lecturer_id))

    def get_lecturer_for_user(self, user_id: str) -> LecturerInfo:
        """Lecturer profile linked to an identity-provider subject."""
        return LecturerInfo.from_model(self._get_by_user(user_id))

    def list_lecturers(
        self,
        search: str | None = None,
        department: str | None = None,
    ) -> list[LecturerInfo]:
        """
        Lecturers ordered by name.

        ``search`` matches anywhere in the name or user id, ignoring case;
        a blank search matches everyone.
        """
        stmt = select(Lecturer).order_by(Lecturer.name, Lecturer.id)
        if search and search.strip():
            term = search.strip()
            stmt = stmt.where(
                or_(
                    Lecturer.name.icontains(term, autoescape=True),
                    Lecturer.user_id.icontains(term, autoescape=True),
                )
            )
        if department is not None:
            stmt = stmt.where(Lecturer.department == department)
        return [
            LecturerInfo.from_model(lecturer)
            for lecturer in self.session.execute(stmt).scalars().all()
        ]

    def update_hourly_rate(
        self,
        lecturer_id: int,
        new_rate: Decimal | int | str,
        actor: Actor,
    ) -> LecturerInfo:
        """
        Set one lecturer's rate (HR only).

        Raises:
            RoleNotPermittedError: Actor is not HR.
            LecturerNotFoundError: No lecturer with this id.
            InvalidHourlyRateError: Rate is negative or not a number.
        """
        actor.require("update_hourly_rate", Role.HR)
        rate = _valid_rate(new_rate)
        lecturer = self._get_by_id(lecturer_id)
        old_rate = lecturer.hourly_rate

        lecturer.hourly_rate = rate
        self.session.flush()

        logger.info(
            "hourly_rate_updated",
            extra={
                "lecturer_id": lecturer_id,
                "old_rate": old_rate,
                "new_rate": rate,
                "actor_id": actor.user_id,
            },
        )
        return LecturerInfo.from_model(lecturer)

    def bulk_update_hourly_rates(
        self,
        mode: RateUpdateMode,
        value: Decimal | int | str,
        actor: Actor,
        department: str | None = None,
    ) -> int:
        """
        Change the rate of every lecturer, or every lecturer in a department.

        FIXED sets each rate to ``value``.  PERCENTAGE multiplies each rate
        by ``1 + value / 100`` and rounds to 2 places.  Every new rate is
        validated before any is written.

        Returns:
            Number of lecturers updated.

        Raises:
            RoleNotPermittedError: Actor is not HR.
            InvalidHourlyRateError: A resulting rate would be negative.
        """
        actor.require("bulk_update_hourly_rates", Role.HR)
        mode = RateUpdateMode(mode)
        try:
            amount = to_decimal(value)
        except ValueError as exc:
            raise InvalidHourlyRateError(str(value)) from exc

        stmt = select(Lecturer).order_by(Lecturer.id)
        if department is not None:
            stmt = stmt.where(Lecturer.department == department)
        lecturers = self.session.execute(stmt).scalars().all()

        if mode == RateUpdateMode.FIXED:
            new_rates = [_valid_rate(amount) for _ in lecturers]
        else:
            factor = Decimal(1) + amount / Decimal(100)
            new_rates = [_valid_rate(lec.hourly_rate * factor) for lec in lecturers]

        for lecturer, rate in zip(lecturers, new_rates):
            lecturer.hourly_rate = rate
        self.session.flush()

        logger.info(
            "hourly_rates_bulk_updated",
            extra={
                "mode": mode.value,
                "value": amount,
                "department": department,
                "updated_count": len(lecturers),
                "actor_id": actor.user_id,
            },
        )
        return len(lecturers)
