"""Upload intent model and target-path rules."""

import re
import secrets
import uuid
from datetime import datetime

from pydantic import BaseModel

from sigp_storage.errors import InvalidTarget
from sigp_storage.models.enums import IntentStatus

MAX_PATH_LENGTH = 1024
MAX_SEGMENT_LENGTH = 255
RESERVED_SEGMENTS = {".sigp"}

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


class UploadIntent(BaseModel):
    intent_id: str
    owner_id: uuid.UUID
    target_path: str
    object_key: str
    content_type: str | None = None
    content_hash: str | None = None
    byte_size_limit: int
    created_at: datetime
    expires_at: datetime
    status: IntentStatus = IntentStatus.pending
    # Written by the compare-and-set that confirms the intent, so whoever
    # completes the promotion records what the winning confirmer verified.
    confirmed_checksum: str | None = None
    confirmed_size: int | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_hash(self) -> dict[str, str | int]:
        """Flatten to Redis hash fields, omitting unset optionals."""
        return {
            k: v for k, v in self.model_dump(mode="json").items() if v is not None
        }

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> "UploadIntent":
        return cls.model_validate(data)


def new_intent_id() -> str:
    return secrets.token_urlsafe(24)


def normalize_target_path(target_path: str) -> str:
    """Validate a client-supplied logical path and return it unchanged.

    Raises InvalidTarget for absolute paths, traversal segments, control
    characters, backslashes, reserved prefixes and over-long names.
    """
    if not target_path or not target_path.strip():
        raise InvalidTarget("Target path must not be empty")
    if len(target_path) > MAX_PATH_LENGTH:
        raise InvalidTarget(f"Target path exceeds {MAX_PATH_LENGTH} characters")
    if target_path.startswith("/"):
        raise InvalidTarget("Target path must be relative")
    if "\\" in target_path:
        raise InvalidTarget("Target path must not contain backslashes")
    if _CONTROL_CHARS.search(target_path):
        raise InvalidTarget("Target path must not contain control characters")

    segments = target_path.split("/")
    for segment in segments:
        if segment in ("", ".", ".."):
            raise InvalidTarget(f"Invalid path segment: '{segment}'")
        if len(segment) > MAX_SEGMENT_LENGTH:
            raise InvalidTarget(f"Path segment exceeds {MAX_SEGMENT_LENGTH} characters")
    if segments[0] in RESERVED_SEGMENTS:
        raise InvalidTarget(f"'{segments[0]}' is reserved")
    return target_path


def build_object_key(prefix: str, owner_id: uuid.UUID, intent_id: str, target_path: str) -> str:
    # Per-intent key: two uploads to one logical path never share an object.
    return f"{prefix.strip('/')}/{owner_id}/{intent_id}/{target_path}"
