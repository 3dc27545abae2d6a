"""Partner Lookup API payloads.

The partner nests account details under ``config`` and user names under
``employee_record``; both the nested and a flat shape are accepted.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AccountDescriptor(BaseModel):
    """What the partner knows about one of its accounts."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    identifier: str = Field(min_length=1, description="Partner account identifier")
    admin_email: str | None = Field(default=None, description="Administrator email")
    name: str | None = Field(default=None, description="Account name")

    @model_validator(mode="before")
    @classmethod
    def _flatten_config(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("config"), dict):
            config = data["config"]
            data = {
                **data,
                "admin_email": data.get("admin_email", config.get("admin_email")),
                "name": data.get("name", config.get("name")),
            }
        return data


class UserDescriptor(BaseModel):
    """What the partner knows about one user of an account."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    identifier: str = Field(min_length=1, description="Partner user identifier")
    username: str | None = Field(default=None, description="Login name")
    email: str | None = Field(default=None, description="Email address")
    first_name: str | None = Field(default=None, description="First name")
    last_name: str | None = Field(default=None, description="Last name")

    @model_validator(mode="before")
    @classmethod
    def _flatten_employee_record(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("employee_record"), dict):
            record = data["employee_record"]
            data = {
                **data,
                "first_name": data.get("first_name", record.get("first_name")),
                "last_name": data.get("last_name", record.get("last_name")),
            }
        return data
