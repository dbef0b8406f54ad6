"""Domain models for operating-system user accounts."""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class UserIdentity:
    """Account labels supplied by the accounts service."""

    username: str
    display_name: str = ""
    icon: str = ""

    def __str__(self) -> str:
        return self.display_name or self.username


class AccountRecord(BaseModel):
    """Properties of one account object of the accounts service."""

    model_config = ConfigDict(populate_by_name=True)

    user_name: str = Field(alias="UserName", min_length=1)
    real_name: str = Field(default="", alias="RealName")
    icon_file: str = Field(default="", alias="IconFile")

    def to_identity(self) -> UserIdentity:
        return UserIdentity(
            username=self.user_name,
            display_name=self.real_name,
            icon=self.icon_file,
        )
