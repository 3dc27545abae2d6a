"""User domain entity."""

from typing import Any

from pydantic import Field

from panel_bridge.entities.core._base import Entity

DEFAULT_LAT = 43.4
DEFAULT_LNG = -80.5


class User(Entity):
    """A person within one account of this application.

    ``lat``/``lng`` are the application's own data (where the user is), not
    anything the partner supplies.
    """

    account_id: int = Field(description="Owning account")
    external_id: str | None = Field(
        default=None, description="Partner user identifier, once mapped"
    )
    username: str | None = Field(default=None, description="Login name")
    email: str | None = Field(default=None, description="User's email address")
    first_name: str | None = Field(default=None, description="User's first name")
    last_name: str | None = Field(default=None, description="User's last name")
    lat: float = Field(default=DEFAULT_LAT, description="Latitude")
    lng: float = Field(default=DEFAULT_LNG, description="Longitude")

    @property
    def is_guest(self) -> bool:
        return self.id == 0

    def __eq__(self, other: Any) -> bool:
        """Compare users by business attributes, ignoring timestamps."""
        if not isinstance(other, User):
            return False

        return (
            self.id == other.id
            and self.account_id == other.account_id
            and self.external_id == other.external_id
            and self.username == other.username
            and self.email == other.email
            and self.first_name == other.first_name
            and self.last_name == other.last_name
            and self.lat == other.lat
            and self.lng == other.lng
        )

    def __hash__(self) -> int:
        return hash((
            self.id,
            self.account_id,
            self.external_id,
            self.username,
            self.email,
            self.first_name,
            self.last_name,
        ))


def guest_user() -> User:
    """Placeholder for a requester we cannot identify. Never persisted."""
    return User(
        id=0,
        account_id=0,
        external_id="",
        username="",
        email="",
        first_name="guest",
        last_name="",
        lat=DEFAULT_LAT,
        lng=DEFAULT_LNG,
    )
