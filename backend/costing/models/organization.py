"""
Multi-Tenancy Models: Organization, Branch and CompanySettings.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntPK, Money

if TYPE_CHECKING:
    from .menu import BranchMenu


class Organization(AuditMixin, Base):
    """
    Top-level tenant (a restaurant company or brand).
    Ingredients, recipes, menu items and branches all belong to one organization;
    costs never flow across organizations.
    """

    __tablename__ = "organization"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)

    # Relationships
    branches: Mapped[list["Branch"]] = relationship(back_populates="organization")
    settings: Mapped[Optional["CompanySettings"]] = relationship(
        back_populates="organization", uselist=False
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, slug='{self.slug}')>"


class Branch(AuditMixin, Base):
    """
    A physical restaurant location.
    Approved menu items are replicated into every active branch.
    """

    __tablename__ = "branch"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("organization.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text)

    # Relationships
    organization: Mapped["Organization"] = relationship(back_populates="branches")
    branch_menus: Mapped[list["BranchMenu"]] = relationship(back_populates="branch")


class CompanySettings(Base):
    """
    Per-organization costing settings.

    target_margin_threshold is a fraction (0.30 means 30%); NULL disables
    margin alerts. auto_propagate_approved_menus controls whether approving a
    menu item replicates it into all branches.
    """

    __tablename__ = "company_settings"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("organization.id"), nullable=False
    )
    target_margin_threshold: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    auto_propagate_approved_menus: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    organization: Mapped["Organization"] = relationship(back_populates="settings")

    __table_args__ = (
        UniqueConstraint("organization_id", name="uq_company_settings_organization"),
    )

    def __repr__(self) -> str:
        return (
            f"<CompanySettings(organization_id={self.organization_id}, "
            f"threshold={self.target_margin_threshold})>"
        )
