"""Credential value held by the auth session."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..models import RecordModel
from .jwt_token_manager import JWTTokenManager, TokenValidationError


@dataclass(frozen=True)
class Credential:
    """Token plus the identity record it was issued for.

    ``expires_at`` is read from the token's ``exp`` claim when not given.
    Instances are never mutated; a refresh produces a new Credential.
    """

    token: str
    record: Optional[RecordModel] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_token(
        cls,
        token: str,
        record: Optional[RecordModel] = None,
        jwt_manager: Optional[JWTTokenManager] = None,
    ) -> "Credential":
        manager = jwt_manager or JWTTokenManager()
        try:
            expires_at = manager.get_token_expiry_time(token)
        except TokenValidationError:
            expires_at = None
        snapshot = record.model_copy(deep=True) if record is not None else None
        return cls(token=token, record=snapshot, expires_at=expires_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "record": self.record.to_dict() if self.record is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        """Rebuild a credential from ``to_dict`` output.

        Raises:
            KeyError: If the token is missing
        """
        record_data = data.get("record")
        record = RecordModel.model_validate(record_data) if record_data else None
        return cls.from_token(data["token"], record)

    def __repr__(self) -> str:
        # keep tokens out of logs and tracebacks
        prefix = self.token[:8] + "..." if self.token else ""
        record_id = self.record.id if self.record is not None else None
        return f"Credential(token={prefix!r}, record={record_id!r}, expires_at={self.expires_at!r})"
