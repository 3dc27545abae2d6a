"""User database table model."""

from sqlalchemy import Column, String, UniqueConstraint
from sqlmodel import Field

from panel_bridge.entities.core._base import EntityTable


class UserTable(EntityTable, table=True):
    """Database persistence model for users.

    A partner user identifier is unique within its account once set.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("account_id", "external_id", name="uq_users_account_external_id"),
    )

    account_id: int = Field(foreign_key="accounts.id", index=True)
    external_id: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True, index=True)
    )
    username: str | None = Field(default=None, index=True)
    email: str | None = Field(default=None, index=True)
    first_name: str | None = None
    last_name: str | None = None
    lat: float
    lng: float
