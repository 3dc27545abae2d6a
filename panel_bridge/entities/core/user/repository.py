"""User data-access layer."""

from sqlalchemy import and_, or_, update
from sqlmodel import Session, select

from panel_bridge.entities.core.user.entity import User
from panel_bridge.entities.core.user.table import UserTable


class UserRepository:
    """Data-access layer for users, always scoped to one account."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, user_id: int) -> User | None:
        row = self._session.get(UserTable, user_id)
        if row is None:
            return None
        return User.model_validate(row, from_attributes=True)

    def get_by_external_id(self, account_id: int, external_id: str) -> User | None:
        statement = select(UserTable).where(
            (UserTable.account_id == account_id) & (UserTable.external_id == external_id)
        )
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return User.model_validate(row, from_attributes=True)

    def find_candidates(
        self,
        account_id: int,
        username: str | None,
        email: str | None,
        first_name: str | None,
        last_name: str | None,
        external_id: str,
    ) -> list[User]:
        """Users of the account matching by username, email, or full name.

        Users already mapped to a different external identifier are excluded.
        Results are ordered by id.
        """
        criteria = []
        if username:
            criteria.append(UserTable.username == username)
        if email:
            criteria.append(UserTable.email == email)
        if first_name and last_name:
            criteria.append(
                and_(UserTable.first_name == first_name, UserTable.last_name == last_name)
            )
        if not criteria:
            return []

        statement = (
            select(UserTable)
            .where(UserTable.account_id == account_id)
            .where(or_(*criteria))
            .where(
                or_(UserTable.external_id.is_(None), UserTable.external_id == external_id)
            )
            .order_by(UserTable.id)
        )
        rows = self._session.exec(statement).all()
        return [User.model_validate(row, from_attributes=True) for row in rows]

    def list_for_account(self, account_id: int) -> list[User]:
        statement = (
            select(UserTable).where(UserTable.account_id == account_id).order_by(UserTable.id)
        )
        return [
            User.model_validate(row, from_attributes=True)
            for row in self._session.exec(statement).all()
        ]

    def create(
        self,
        account_id: int,
        external_id: str | None,
        username: str | None,
        email: str | None,
        first_name: str | None,
        last_name: str | None,
        lat: float,
        lng: float,
    ) -> User:
        row = UserTable(
            account_id=account_id,
            external_id=external_id,
            username=username,
            email=email,
            first_name=first_name,
            last_name=last_name,
            lat=lat,
            lng=lng,
        )
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return User.model_validate(row, from_attributes=True)

    def set_external_id(self, user_id: int, external_id: str) -> User | None:
        """Map an unmapped user; None when it is missing or mapped elsewhere."""
        statement = (
            update(UserTable)
            .where(UserTable.id == user_id)
            .where(UserTable.external_id.is_(None))
            .values(external_id=external_id)
        )
        self._session.exec(statement)
        row = self._session.get(UserTable, user_id, populate_existing=True)
        if row is None or row.external_id != external_id:
            return None
        return User.model_validate(row, from_attributes=True)
