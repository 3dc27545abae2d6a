"""Account database table model."""

from sqlalchemy import Column, String, UniqueConstraint
from sqlmodel import Field

from panel_bridge.entities.core._base import EntityTable


class AccountTable(EntityTable, table=True):
    """Database persistence model for accounts.

    ``external_id`` is nullable so that accounts can exist before they are
    reconciled; the unique constraint only binds once it is set.
    """

    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("external_id", name="uq_accounts_external_id"),)

    external_id: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True, index=True)
    )
    admin_email: str | None = Field(
        default=None, sa_column=Column(String(320), nullable=True, index=True)
    )
    account_name: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True, index=True)
    )
