"""Pydantic models for PocketBase API payloads.

Records keep every server-defined field: unknown keys are stored as extra
attributes in insertion order, so schemas added on the server side survive a
round trip through the client.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

SUPERUSERS_COLLECTION = "_superusers"


class RecordModel(BaseModel):
    """A single record with its system fields and arbitrary data fields."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    collection_id: str = Field(default="", alias="collectionId")
    collection_name: str = Field(default="", alias="collectionName")
    expand: Dict[str, Any] = Field(default_factory=dict)

    @property
    def data(self) -> Dict[str, Any]:
        """Server-defined fields that are not system fields."""
        return dict(self.model_extra or {})

    def get(self, key: str, default: Any = None) -> Any:
        system = {
            "id": self.id,
            "collectionId": self.collection_id,
            "collectionName": self.collection_name,
            "expand": self.expand,
        }
        if key in system:
            return system[key]
        return (self.model_extra or {}).get(key, default)

    def __getitem__(self, key: str) -> Any:
        marker = object()
        value = self.get(key, marker)
        if value is marker:
            raise KeyError(key)
        return value

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using wire (camelCase) names, empty expand omitted."""
        data = self.model_dump(by_alias=True)
        if not self.expand:
            data.pop("expand", None)
        return data


class ListResult(BaseModel, Generic[T]):
    """One page of a paginated list response."""

    model_config = ConfigDict(populate_by_name=True)

    page: int = 1
    per_page: int = Field(default=0, alias="perPage")
    total_items: int = Field(default=0, alias="totalItems")
    total_pages: int = Field(default=0, alias="totalPages")
    items: List[T] = Field(default_factory=list)


class AuthResponse(BaseModel):
    """Response of every auth endpoint: ``{token, record, meta?}``."""

    token: str
    record: RecordModel
    meta: Optional[Dict[str, Any]] = None


class AuthMethodsList(BaseModel):
    model_config = ConfigDict(extra="allow")

    password: Dict[str, Any] = Field(default_factory=dict)
    oauth2: Dict[str, Any] = Field(default_factory=dict)
    mfa: Dict[str, Any] = Field(default_factory=dict)
    otp: Dict[str, Any] = Field(default_factory=dict)


class OTPResponse(BaseModel):
    otp_id: str = Field(alias="otpId")


class HealthCheck(BaseModel):
    code: int
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class CollectionModel(BaseModel):
    """A collection definition. Field schemas are kept as raw dicts."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    name: str
    type: str = "base"
    system: bool = False
    fields: List[Dict[str, Any]] = Field(default_factory=list)
    indexes: List[str] = Field(default_factory=list)
    list_rule: Optional[str] = Field(default=None, alias="listRule")
    view_rule: Optional[str] = Field(default=None, alias="viewRule")
    create_rule: Optional[str] = Field(default=None, alias="createRule")
    update_rule: Optional[str] = Field(default=None, alias="updateRule")
    delete_rule: Optional[str] = Field(default=None, alias="deleteRule")


class LogModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    created: str = ""
    updated: str = ""
    level: int = 0
    message: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)


class HourlyStats(BaseModel):
    total: int
    date: str


class BackupFileInfo(BaseModel):
    key: str
    size: int = 0
    modified: str = ""


class CronJob(BaseModel):
    id: str
    expression: str


class FileToken(BaseModel):
    token: str
