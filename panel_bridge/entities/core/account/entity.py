"""Account domain entity."""

from typing import Any

from pydantic import Field

from panel_bridge.entities.core._base import Entity


class Account(Entity):
    """A customer account of this application.

    ``external_id`` holds the partner's account identifier once the account has
    been reconciled; it stays ``None`` until then.
    """

    external_id: str | None = Field(
        default=None, description="Partner account identifier, once mapped"
    )
    admin_email: str | None = Field(default=None, description="Administrator email")
    account_name: str | None = Field(default=None, description="Display name")

    @property
    def is_mapped(self) -> bool:
        return bool(self.external_id)

    def __eq__(self, other: Any) -> bool:
        """Compare accounts by business attributes, ignoring timestamps."""
        if not isinstance(other, Account):
            return False

        return (
            self.id == other.id
            and self.external_id == other.external_id
            and self.admin_email == other.admin_email
            and self.account_name == other.account_name
        )

    def __hash__(self) -> int:
        return hash((self.id, self.external_id, self.admin_email, self.account_name))
