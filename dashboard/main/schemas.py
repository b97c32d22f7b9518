# Pydantic models for payloads returned by the upstream API.
# The API speaks camelCase; Python code uses the snake_case attribute names.

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class Meta(ApiModel):
    items_per_page: int = Field(0, alias="itemsPerPage")
    total_items: int = Field(0, alias="totalItems")
    current_page: int = Field(0, alias="currentPage")
    total_pages: int = Field(0, alias="totalPages")


class BaseResponse(ApiModel, Generic[T]):
    """Envelope wrapping every upstream response."""

    timestamp: Optional[datetime] = None
    status: int = 200
    message: str = ""
    meta: Optional[Meta] = None
    result: T


class InventoryItem(ApiModel):
    id: str
    name: str = ""
    code: str = ""
    description: str = ""
    stock_quantity: int = Field(0, alias="stockQuantity")
    image: Optional[str] = None


class User(ApiModel):
    """A user as listed by the API; any password field is dropped on parse."""

    id: str
    name: str = ""
    email: str = ""
    image: Optional[str] = None
    is_immutable: bool = Field(False, alias="isImmutable")


class Token(ApiModel):
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


class LoginUser(ApiModel):
    email: str
    name: str = ""


class LoginResult(ApiModel):
    token: Token
    user: Optional[LoginUser] = None


def parse_response(data, result_type):
    """Validate ``data`` as ``BaseResponse[result_type]``."""
    return BaseResponse[result_type].model_validate(data)
