"""
Campaign service.

A campaign has no record of its own: it lives inside every session document
that carries its id. Updates are merged into each of those sessions and
deletion cascades to all of them.
"""

import uuid
from typing import Any, Dict, List, Optional, Sequence

from pokedm.errors import StaleWriteError, StorageError
from pokedm.utils.clock import Clock
from pokedm.utils.logger import get_logger

from .locks import SessionLockManager
from .merge import StateMergeEngine
from .session_factory import new_session_document

logger = get_logger(__name__)


def new_campaign_id() -> str:
    return f"campaign_{uuid.uuid4().hex[:12]}"


class CampaignService:
    """Create, read, update and delete campaigns across their sessions"""

    def __init__(
        self,
        storage,
        merge_engine: Optional[StateMergeEngine] = None,
        locks: Optional[SessionLockManager] = None,
        clock: Optional[Clock] = None,
    ):
        self.storage = storage
        self.merge_engine = merge_engine or StateMergeEngine()
        self.locks = locks or SessionLockManager()
        self.clock = clock

    async def create(
        self, campaign: Optional[Dict[str, Any]] = None, character_ids: Sequence[str] = ()
    ) -> Dict[str, Any]:
        """
        Start a campaign with its first session

        Raises:
            SessionValidationError: ``campaign`` does not fit the schema
        """
        campaign_id = new_campaign_id()
        document = new_session_document(
            campaign_id=campaign_id, character_ids=character_ids, clock=self.clock
        )
        fields = {key: value for key, value in (campaign or {}).items() if key != "campaign_id"}
        document = self.merge_engine.merge(document, {"campaign": fields})
        session_id = document["session"]["session_id"]
        await self.storage.save(session_id, document)
        logger.info(f"Created campaign {campaign_id} with session {session_id}")
        return {**document["campaign"], "session_ids": [session_id]}

    async def get(self, campaign_id: str) -> Optional[Dict[str, Any]]:
        session_ids = await self.storage.list(campaign_id)
        for session_id in session_ids:
            document = await self.storage.load(session_id)
            if document is not None:
                return {**document["campaign"], "session_ids": session_ids}
        return None

    async def list(self) -> List[Dict[str, Any]]:
        campaigns: Dict[str, Dict[str, Any]] = {}
        for session_id in await self.storage.list():
            document = await self.storage.load(session_id)
            if document is None:
                continue
            campaign_id = document["session"]["campaign_id"]
            if not campaign_id:
                continue
            entry = campaigns.setdefault(
                campaign_id,
                {
                    "campaign_id": campaign_id,
                    "region": document["campaign"]["region"]["name"],
                    "session_ids": [],
                },
            )
            entry["session_ids"].append(session_id)
        return [campaigns[key] for key in sorted(campaigns)]

    async def update(self, campaign_id: str, update: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Merge ``update`` into the campaign of every session sharing it

        The merge is checked against one session before any write, so an
        invalid update changes no session.

        Returns:
            The updated campaign, or None if no session carries the id

        Raises:
            SessionValidationError: the merged campaign is invalid
        """
        fields = {key: value for key, value in update.items() if key != "campaign_id"}
        session_ids = await self.storage.list(campaign_id)
        if not session_ids:
            return None

        for session_id in session_ids:
            document = await self.storage.load(session_id)
            if document is not None:
                # Validate once up front
                self.merge_engine.merge(document, {"campaign": fields})
                break

        result: Optional[Dict[str, Any]] = None
        for session_id in session_ids:
            async with self.locks.hold(session_id):
                merged = await self._update_session(session_id, fields)
            if merged is not None:
                result = merged["campaign"]
        logger.info(f"Updated campaign {campaign_id} across {len(session_ids)} sessions")
        return {**result, "session_ids": session_ids} if result else None

    async def _update_session(self, session_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for attempt in (1, 2):
            document, revision = await self.storage.load_with_revision(session_id)
            if document is None:
                return None
            merged = self.merge_engine.merge(document, {"campaign": fields})
            try:
                await self.storage.save(session_id, merged, expected_revision=revision)
                return merged
            except StaleWriteError:
                if attempt == 2:
                    raise
                logger.info(f"Stale campaign write for {session_id}; retrying once")
        return None

    async def delete(self, campaign_id: str) -> int:
        """Delete every session of the campaign and return how many were removed"""
        if not campaign_id:
            raise StorageError("Campaign id is required", code="INVALID_ID", operation="delete")
        deleted = 0
        for session_id in await self.storage.list(campaign_id):
            async with self.locks.hold(session_id):
                if await self.storage.delete(session_id):
                    deleted += 1
        logger.info(f"Deleted campaign {campaign_id} ({deleted} sessions)")
        return deleted

