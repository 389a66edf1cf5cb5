from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AccountIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=120)


class AccountUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=120)


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: float
    timestamp: Optional[int] = None
    account_id: str
    category: str
    tags: list[str] = Field(default_factory=list)
    notes: str = Field(default="", max_length=2000)


class TransactionUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Optional[float] = None
    timestamp: Optional[int] = None
    account_id: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class ResponseBody(BaseModel):
    status_code: int
    custom_code: str
    data: Optional[Any] = None


class ErrorBody(BaseModel):
    status_code: int
    custom_code: str
    errors: list[str] = Field(default_factory=list)
