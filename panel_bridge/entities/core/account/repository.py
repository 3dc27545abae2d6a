"""Account data-access layer."""

from sqlalchemy import or_, update
from sqlmodel import Session, select

from panel_bridge.entities.core.account.entity import Account
from panel_bridge.entities.core.account.table import AccountTable


class AccountRepository:
    """Data-access layer for accounts.

    Operates on a caller-owned session; transaction boundaries belong to the caller.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, account_id: int) -> Account | None:
        row = self._session.get(AccountTable, account_id)
        if row is None:
            return None
        return Account.model_validate(row, from_attributes=True)

    def get_by_external_id(self, external_id: str) -> Account | None:
        statement = select(AccountTable).where(AccountTable.external_id == external_id)
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return Account.model_validate(row, from_attributes=True)

    def find_candidates(
        self, admin_email: str | None, account_name: str | None, external_id: str
    ) -> list[Account]:
        """Accounts matching by admin email or name that are free to take ``external_id``.

        Rows already mapped to a different external identifier are excluded.
        Results are ordered by id.
        """
        criteria = []
        if admin_email:
            criteria.append(AccountTable.admin_email == admin_email)
        if account_name:
            criteria.append(AccountTable.account_name == account_name)
        if not criteria:
            return []

        statement = (
            select(AccountTable)
            .where(or_(*criteria))
            .where(
                or_(
                    AccountTable.external_id.is_(None),
                    AccountTable.external_id == external_id,
                )
            )
            .order_by(AccountTable.id)
        )
        rows = self._session.exec(statement).all()
        return [Account.model_validate(row, from_attributes=True) for row in rows]

    def list_all(self) -> list[Account]:
        rows = self._session.exec(select(AccountTable).order_by(AccountTable.id)).all()
        return [Account.model_validate(row, from_attributes=True) for row in rows]

    def create(
        self,
        external_id: str | None,
        admin_email: str | None,
        account_name: str | None,
    ) -> Account:
        row = AccountTable(
            external_id=external_id, admin_email=admin_email, account_name=account_name
        )
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return Account.model_validate(row, from_attributes=True)

    def set_external_id(self, account_id: int, external_id: str) -> Account | None:
        """Map an unmapped account.

        The guard lives in the UPDATE itself so a concurrent mapping is never
        overwritten. Returns the account when it now carries ``external_id``,
        None when it is missing or mapped to another identifier.
        """
        statement = (
            update(AccountTable)
            .where(AccountTable.id == account_id)
            .where(AccountTable.external_id.is_(None))
            .values(external_id=external_id)
        )
        self._session.exec(statement)
        row = self._session.get(AccountTable, account_id, populate_existing=True)
        if row is None or row.external_id != external_id:
            return None
        return Account.model_validate(row, from_attributes=True)
