"""
Memory Store Facade - single entry point for curated memory items.

Key responsibilities:
- Validated create/update of memory items
- Atomic supersede: activating a supersede link archives the older item
  in the same transaction
- Filtered listing, archiving and bulk archiving
- Usage tracking for relevance ranking
"""

from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ragchat.core.record_store.base import RecordStore
from ragchat.models.memory import (
    MemoryCandidate,
    MemoryFilter,
    MemoryItem,
    MemoryScope,
    MemoryStatus,
    MemoryType,
    normalize_tags,
)
from ragchat.utils.exceptions import MemoryStoreError, NotFoundError, RecordStoreError, ValidationError
from ragchat.utils.id_generator import generate_memory_id
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)

AUTO_CAPTURE_TAG = "auto"

UPDATABLE_FIELDS = {
    "content",
    "type",
    "scope",
    "status",
    "conversation_id",
    "source_message_id",
    "supersedes_memory_id",
    "tags",
}


def _coerce_enum(enum_cls, value: Any, field: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"invalid {field}: {value}", {field: value}) from e


class MemoryStore:
    """
    Facade for all memory item operations.

    Services use this instead of calling the record store directly.
    """

    def __init__(self, record_store: RecordStore):
        """
        Initialize MemoryStore facade.

        Args:
            record_store: Transactional record store
        """
        self.record_store = record_store

    async def create_item(
        self,
        content: str,
        type: MemoryType | str = MemoryType.FACT,
        scope: MemoryScope | str = MemoryScope.GLOBAL,
        status: MemoryStatus | str = MemoryStatus.ACTIVE,
        conversation_id: str | None = None,
        source_message_id: str | None = None,
        supersedes_memory_id: str | None = None,
        tags: list[str] | None = None,
    ) -> MemoryItem:
        """
        Create a memory item.

        Args:
            content: Statement to remember (trimmed, must be non-empty)
            type: preference, fact or decision
            scope: global or conversation
            status: active or archived
            conversation_id: Owner, required for conversation scope
            source_message_id: Turn the item came from
            supersedes_memory_id: Older item this one replaces; archived atomically
            tags: Free-form tags (normalized to lower case)

        Returns:
            The created item

        Raises:
            ValidationError: If any field is invalid
        """
        content = (content or "").strip()
        if not content:
            raise ValidationError("content is required")

        memory_type = _coerce_enum(MemoryType, type, "type")
        memory_scope = _coerce_enum(MemoryScope, scope, "scope")
        memory_status = _coerce_enum(MemoryStatus, status, "status")

        if memory_scope == MemoryScope.CONVERSATION and not conversation_id:
            raise ValidationError("conversation_id required for conversation scope")

        item = MemoryItem(
            id=generate_memory_id(),
            type=memory_type,
            scope=memory_scope,
            content=content,
            status=memory_status,
            conversation_id=conversation_id if memory_scope == MemoryScope.CONVERSATION else None,
            source_message_id=source_message_id,
            supersedes_memory_id=supersedes_memory_id or None,
            tags=normalize_tags(tags or []),
        )

        async with self.record_store.transaction():
            await self.record_store.add_memory(item)
            await self._archive_superseded(item)

        logger.info(
            f"Created memory item {item.id}",
            extra={
                "memory_id": item.id,
                "type": item.type.value,
                "scope": item.scope.value,
                "supersedes": item.supersedes_memory_id,
            },
        )
        return item

    async def update_item(self, memory_id: str, changes: dict[str, Any]) -> MemoryItem:
        """
        Apply a partial update.

        Args:
            memory_id: Item to update
            changes: Field -> new value; only fields in UPDATABLE_FIELDS

        Returns:
            The updated item

        Raises:
            NotFoundError: If the item does not exist
            ValidationError: If a field or the resulting item is invalid
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"unknown fields: {', '.join(sorted(unknown))}")

        updates = dict(changes)
        if "content" in updates:
            updates["content"] = str(updates["content"] or "").strip()
            if not updates["content"]:
                raise ValidationError("content cannot be empty")
        if "type" in updates:
            updates["type"] = _coerce_enum(MemoryType, updates["type"], "type")
        if "scope" in updates:
            updates["scope"] = _coerce_enum(MemoryScope, updates["scope"], "scope")
        if "status" in updates:
            updates["status"] = _coerce_enum(MemoryStatus, updates["status"], "status")
        if "tags" in updates:
            updates["tags"] = normalize_tags(updates["tags"] or [])
        for key in ("conversation_id", "source_message_id", "supersedes_memory_id"):
            if key in updates and not updates[key]:
                updates[key] = None

        if updates.get("supersedes_memory_id") == memory_id:
            raise ValidationError("a memory item cannot supersede itself")

        async with self.record_store.transaction():
            current = await self.record_store.get_memory(memory_id)
            if current is None:
                raise NotFoundError(f"Memory item not found: {memory_id}")

            merged = {**current.model_dump(), **updates, "updated_at": datetime.now()}
            # Global items never carry a conversation
            if merged["scope"] == MemoryScope.GLOBAL:
                merged["conversation_id"] = None

            try:
                item = MemoryItem.model_validate(merged)
            except PydanticValidationError as e:
                raise ValidationError(f"invalid memory item: {e}") from e

            if item.scope == MemoryScope.CONVERSATION and not item.conversation_id:
                raise ValidationError("conversation_id required for conversation scope")

            await self.record_store.update_memory(item)
            await self._archive_superseded(item)

        return item

    async def _archive_superseded(self, item: MemoryItem) -> None:
        """Archive the item's supersede target. Caller holds the transaction."""
        if not item.supersedes_memory_id:
            return
        archived = await self.record_store.set_memory_status(
            [item.supersedes_memory_id], MemoryStatus.ARCHIVED, datetime.now()
        )
        if not archived:
            logger.warning(
                f"Superseded memory item not found: {item.supersedes_memory_id}",
                extra={"memory_id": item.id},
            )

    async def get_item(self, memory_id: str) -> MemoryItem | None:
        """Get a memory item by ID."""
        if not memory_id or not memory_id.strip():
            raise ValidationError("memory_id cannot be empty")
        return await self.record_store.get_memory(memory_id)

    async def list_items(self, filters: MemoryFilter | None = None) -> list[MemoryItem]:
        """List items matching the filter, most recently updated first."""
        return await self.record_store.query_memories(filters or MemoryFilter())

    async def archive_item(self, memory_id: str) -> MemoryItem:
        """
        Archive one item (memory is never hard-deleted).

        Raises:
            NotFoundError: If the item does not exist
        """
        return await self.update_item(memory_id, {"status": MemoryStatus.ARCHIVED})

    async def bulk_archive(self, status: MemoryStatus | str = MemoryStatus.ACTIVE) -> int:
        """
        Archive every item currently in ``status``.

        Returns:
            Number of archived items
        """
        current = _coerce_enum(MemoryStatus, status, "status")
        count = await self.record_store.archive_memories_with_status(current, datetime.now())
        logger.info(f"Bulk archived {count} memory items", extra={"from_status": current.value})
        return count

    async def list_visible(self, conversation_id: str) -> list[MemoryItem]:
        """Active items visible to a conversation (global, or scoped to it)."""
        items = await self.record_store.query_memories(
            MemoryFilter(status=MemoryStatus.ACTIVE)
        )
        return [item for item in items if item.visible_to(conversation_id)]

    async def mark_used(self, memory_ids: list[str]) -> None:
        """Increment use counters for items injected into a prompt."""
        if not memory_ids:
            return
        try:
            await self.record_store.mark_memories_used(memory_ids, datetime.now())
        except RecordStoreError as e:
            raise MemoryStoreError(f"Failed to mark memory items used: {e}") from e

    async def create_captured(
        self, candidates: list[MemoryCandidate], conversation_id: str
    ) -> list[MemoryItem]:
        """
        Persist auto-captured candidates in one transaction, tagged ``auto``.

        Args:
            candidates: Deduplicated capture candidates
            conversation_id: Conversation the turn belongs to

        Returns:
            Created items in candidate order
        """
        if not candidates:
            return []

        created = []
        async with self.record_store.transaction():
            for candidate in candidates:
                item = MemoryItem(
                    id=generate_memory_id(),
                    type=candidate.type,
                    scope=candidate.scope,
                    content=candidate.content,
                    status=MemoryStatus.ACTIVE,
                    conversation_id=(
                        conversation_id if candidate.scope == MemoryScope.CONVERSATION else None
                    ),
                    source_message_id=candidate.source_message_id,
                    tags=[AUTO_CAPTURE_TAG],
                )
                await self.record_store.add_memory(item)
                created.append(item)

        logger.info(
            f"Auto-captured {len(created)} memory items",
            extra={"conversation_id": conversation_id, "ids": [item.id for item in created]},
        )
        return created
