from typing import Any

from pydantic import BaseModel, Field


class UploadRecord(BaseModel):
    url: str
    filename: str
    size: int = Field(default=0, ge=0)
    timestamp: int
    client_id: str | None = Field(default=None)


class UploadTicket(BaseModel):
    token: str
    pathname: str
    upload_url: str
    maximum_size_in_bytes: int
    expires_at: int


class UploadAuthorizeRequest(BaseModel):
    filename: str | None = None
    declared_size: Any = None
    client_context: dict[str, Any] | None = None


class HistoryCreateRequest(BaseModel):
    url: str | None = None
    filename: str | None = None
    size: Any = None


class HistoryCleanupRequest(BaseModel):
    urls: Any = None


class AdminAuthRequest(BaseModel):
    secret: str | None = None


class AdminDeleteRequest(BaseModel):
    url: str | None = None
