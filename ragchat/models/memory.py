"""
Memory item model.

Memory items are durable, scoped preferences, facts and decisions about the
user or project. They are archived, never hard-deleted.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class MemoryType(str, Enum):
    """Kind of remembered statement."""

    PREFERENCE = "preference"
    FACT = "fact"
    DECISION = "decision"


class MemoryScope(str, Enum):
    """Visibility: every conversation, or only the owning one."""

    GLOBAL = "global"
    CONVERSATION = "conversation"


class MemoryStatus(str, Enum):
    """Memory lifecycle status."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class MemoryItem(BaseModel):
    """
    Curated memory item.

    Features:
    - Scope: global or tied to one conversation
    - Supersede link: activating it archives the older item atomically
    - Usage statistics for relevance ranking
    """

    id: str = Field(..., description="Unique memory ID (mem_xxx)")
    type: MemoryType = Field(...)
    scope: MemoryScope = Field(default=MemoryScope.GLOBAL)
    content: str = Field(..., min_length=1)
    status: MemoryStatus = Field(default=MemoryStatus.ACTIVE)

    conversation_id: str | None = Field(default=None, description="Owner for conversation scope")
    source_message_id: str | None = Field(default=None, description="Turn the item came from")
    supersedes_memory_id: str | None = Field(default=None, description="Older item replaced by this one")
    tags: list[str] = Field(default_factory=list)

    use_count: int = Field(default=0, ge=0)
    last_used_at: datetime | None = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def is_active(self) -> bool:
        return self.status == MemoryStatus.ACTIVE

    def visible_to(self, conversation_id: str) -> bool:
        """Check whether the item may be injected into the given conversation."""
        if self.scope == MemoryScope.GLOBAL:
            return True
        return self.conversation_id == conversation_id


class UsedMemoryItem(BaseModel):
    """Compact view of a memory item injected into a prompt."""

    id: str
    type: MemoryType
    content: str


class MemoryCandidate(BaseModel):
    """Auto-capture output before deduplication and persistence."""

    type: MemoryType
    scope: MemoryScope
    content: str
    source_message_id: str | None = None


class MemoryFilter(BaseModel):
    """Listing filter for memory items; unset fields do not constrain."""

    scope: MemoryScope | None = None
    type: MemoryType | None = None
    status: MemoryStatus | None = None
    conversation_id: str | None = None
    query: str | None = Field(default=None, description="Substring match on content")
    tag: str | None = None


def normalize_tags(tags: list[str]) -> list[str]:
    """Trim and lower-case tags, dropping empties."""
    return [tag.strip().lower() for tag in tags if tag and tag.strip()]
