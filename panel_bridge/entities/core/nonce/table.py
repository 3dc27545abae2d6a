"""Nonce database table model."""

from sqlalchemy import Column, Float, String, UniqueConstraint
from sqlmodel import Field, SQLModel


class NonceTable(SQLModel, table=True):
    """A nonce seen in one namespace at ``seen_at`` (UNIX seconds).

    The ``(namespace, value)`` unique constraint is what makes
    check-and-consume atomic.
    """

    __tablename__ = "nonces"
    __table_args__ = (UniqueConstraint("namespace", "value", name="uq_nonces_namespace_value"),)

    id: int | None = Field(default=None, primary_key=True)
    namespace: str = Field(sa_column=Column(String(32), nullable=False, index=True))
    value: str = Field(sa_column=Column(String(255), nullable=False))
    seen_at: float = Field(sa_column=Column(Float, nullable=False, index=True))
