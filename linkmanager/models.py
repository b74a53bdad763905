import time
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UNCATEGORIZED = "uncategorized"


def now_ms() -> int:
    return int(time.time() * 1000)


class WireModel(BaseModel):
    # snake_case in Python, camelCase on the wire; unknown keys survive a round trip
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SubLink(WireModel):
    id: str
    title: str = ""
    url: str = ""


class Link(WireModel):
    id: str
    title: str
    url: str
    description: Optional[str] = None
    category_id: str = UNCATEGORIZED
    created_at: int = Field(default_factory=now_ms)
    order: int = 0
    sub_links: List[SubLink] = Field(default_factory=list)


class Category(WireModel):
    id: str
    name: str
    order: int = 0


class Dataset(WireModel):
    categories: List[Category] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)


class AppConfig(WireModel):
    password_hash: Optional[str] = None
    session_version: int = 0
    session_secret: Optional[str] = None


def as_text(value: Any) -> Any:
    """Scalar form values as text: 123 -> "123", true -> "true"; falsy ones count as missing."""
    if not value:
        return None
    if isinstance(value, bool):
        return "true"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return value


class LoginIn(BaseModel):
    password: Optional[str] = None

    @field_validator("password", mode="before")
    @classmethod
    def coerce_text(cls, value):
        return as_text(value)


class ChangePasswordIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    old_password: Optional[str] = None
    new_password: Optional[str] = None

    @field_validator("old_password", "new_password", mode="before")
    @classmethod
    def coerce_text(cls, value):
        return as_text(value)
