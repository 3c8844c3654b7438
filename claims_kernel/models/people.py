"""
Module: claims_kernel.models.people
Responsibility: ORM persistence for user profile records and the lecturer
    rate directory.
Architecture position: Kernel > Models.  May import from db/ and from the
    pure domain enumerations.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - user_id (identity-provider subject) is unique per account.
    - A lecturer row links to exactly one account; hourly_rate >= 0.

Failure modes:
    - IntegrityError on duplicate user_id (uq_user_account_user_id,
      uq_lecturer_user_id).

Audit relevance:
    UserAccount.full_name is how audit timelines name the acting user.
    Lecturer.hourly_rate is read once per claim at submission; later rate
    changes never reach existing claims.
"""

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from claims_kernel.db.base import TrackedBase
from claims_kernel.db.types import Rate
from claims_kernel.domain.actor import Role


class UserAccount(TrackedBase):
    """
    Profile record of an authenticated account.

    Guarantees:
        - user_id is unique.
        - role is one of Role's values.
    """

    __tablename__ = "user_accounts"

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_user_account_user_id"),
        Index("idx_user_account_role", "role"),
    )

    # Identity-provider subject
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)

    role: Mapped[Role] = mapped_column(String(20), nullable=False)

    department: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<UserAccount {self.user_id}: {self.full_name} ({self.role})>"


class Lecturer(TrackedBase):
    """
    Lecturer profile and hourly rate.

    Contract:
        The rate stored here is what ClaimService multiplies by hours at
        submission time.  Updating it never touches existing claims.
    """

    __tablename__ = "lecturers"

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_lecturer_user_id"),
        CheckConstraint("hourly_rate >= 0", name="ck_lecturer_rate_non_negative"),
        Index("idx_lecturer_department", "department"),
    )

    user_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("user_accounts.user_id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    department: Mapped[str] = mapped_column(String(100), nullable=False)

    hourly_rate: Mapped[Rate] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Lecturer {self.id}: {self.name} @ {self.hourly_rate}/h>"
