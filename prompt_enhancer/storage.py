"""In-process store for enhanced prompts."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PromptRecord(BaseModel):
    """An enhanced prompt owned by one caller."""

    id: str = Field(default_factory=lambda: f"prompt_{uuid.uuid4()}")
    owner: str
    original_text: str
    enhanced_text: str
    format: str
    created_at: str = Field(default_factory=_utcnow_iso)
    updated_at: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_response(self) -> Dict[str, Any]:
        """Public JSON shape; the owner stays server-side."""
        body = {
            "id": self.id,
            "originalText": self.original_text,
            "enhancedText": self.enhanced_text,
            "format": self.format,
            "createdAt": self.created_at,
            "metadata": dict(self.metadata),
        }
        if self.updated_at:
            body["updatedAt"] = self.updated_at
        return body


class PromptStore:
    """Prompts keyed by id. Contents are lost on restart."""

    def __init__(self):
        self._records: Dict[str, PromptRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def add(self, record: PromptRecord) -> PromptRecord:
        self._records[record.id] = record
        logger.debug("Stored prompt %s for %s", record.id, record.owner)
        return record

    def get(self, prompt_id: str, owner: str) -> Optional[PromptRecord]:
        record = self._records.get(prompt_id)
        if record is None or record.owner != owner:
            return None
        return record

    def list(self, owner: str, limit: int = 10, offset: int = 0) -> Tuple[List[PromptRecord], int]:
        """A page of the owner's prompts, oldest first, and their total."""
        owned = [r for r in self._records.values() if r.owner == owner]
        return owned[offset:offset + limit], len(owned)

    def replace(self, record: PromptRecord) -> PromptRecord:
        if record.id not in self._records:
            raise KeyError(record.id)
        record.updated_at = _utcnow_iso()
        self._records[record.id] = record
        return record

    def delete(self, prompt_id: str, owner: str) -> bool:
        if self.get(prompt_id, owner) is None:
            return False
        del self._records[prompt_id]
        logger.debug("Deleted prompt %s", prompt_id)
        return True
