"""
Generation Poller - observe generation status without a push channel

Fetches the owner's generation list, keeps polling while anything is still
running, and raises one notification per generation that finishes.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set

import httpx

from motionswap.config.constants import CLIENT_POLL_INTERVAL_S, PENDING_STATUSES
from motionswap.services.error_classifier import friendly_message
from motionswap.services.observability import logger


class Notifier(Protocol):
    """Local notification surface (browser Notification API or equivalent)"""

    async def request_permission(self) -> bool:
        ...

    async def notify(self, title: str, body: str, generation: Dict[str, Any]) -> None:
        ...


def notification_title(generation: Dict[str, Any]) -> str:
    return "Video Ready!"


def notification_body(generation: Dict[str, Any]) -> str:
    character_name = generation.get("character_name")
    if character_name:
        return f"Your {character_name} video is ready to view"
    return "Your video generation is complete"


def describe_failure(generation: Dict[str, Any]) -> str:
    """User-facing message for a failed generation"""
    return friendly_message(generation.get("error_message"), generation.get("error"))


@dataclass
class TrackerUpdate:
    """Result of applying one fetch"""

    generations: List[Dict[str, Any]]
    newly_completed: List[Dict[str, Any]] = field(default_factory=list)
    should_request_permission: bool = False


class GenerationTracker:
    """
    Client-side generation state

    Holds the last snapshot per id and the ids deleted locally but not yet
    confirmed gone by a fetch. Deleted ids are hidden from every fetch and
    never notified.
    """

    def __init__(self):
        self.snapshots: Dict[int, Dict[str, Any]] = {}
        self.order: List[int] = []
        self.pending_deletes: Set[int] = set()
        self.permission_requested = False

    @property
    def generations(self) -> List[Dict[str, Any]]:
        return [self.snapshots[i] for i in self.order if i in self.snapshots]

    @property
    def has_pending(self) -> bool:
        return any(g.get("status") in PENDING_STATUSES for g in self.generations)

    def apply(self, fetched: List[Dict[str, Any]]) -> TrackerUpdate:
        """
        Diff a fresh fetch against the previous snapshot

        Args:
            fetched: Generations from the server, most recent first

        Returns:
            TrackerUpdate with the visible list and completed transitions
        """
        fetched_ids = {g["id"] for g in fetched}
        # A delete is confirmed once the server stops returning the row
        self.pending_deletes &= fetched_ids

        visible = [g for g in fetched if g["id"] not in self.pending_deletes]

        newly_completed = []
        for generation in visible:
            previous = self.snapshots.get(generation["id"])
            if (
                generation.get("status") == "completed"
                and previous is not None
                and previous.get("status") != "completed"
            ):
                newly_completed.append(generation)

        self.snapshots = {g["id"]: g for g in visible}
        self.order = [g["id"] for g in visible]

        should_request = False
        if self.has_pending and not self.permission_requested:
            self.permission_requested = True
            should_request = True

        return TrackerUpdate(
            generations=visible,
            newly_completed=newly_completed,
            should_request_permission=should_request,
        )

    def remove_locally(self, generation_id: int) -> Optional[Dict[str, Any]]:
        """Hide a generation immediately; returns the removed snapshot"""
        self.pending_deletes.add(generation_id)
        return self.snapshots.pop(generation_id, None)

    def restore(self, generation: Dict[str, Any], index: int = 0) -> None:
        """Undo remove_locally after a failed delete"""
        generation_id = generation["id"]
        self.pending_deletes.discard(generation_id)
        self.snapshots[generation_id] = generation
        if generation_id not in self.order:
            self.order.insert(min(index, len(self.order)), generation_id)


class GenerationPoller:
    """
    Drive the fetch/poll/notify protocol against the generations API

    ``start`` fetches once and keeps a background poll running every
    ``interval_s`` while any generation is still running. ``on_focus``
    re-fetches immediately.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        notifier: Notifier,
        interval_s: float = CLIENT_POLL_INTERVAL_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        tracker: Optional[GenerationTracker] = None,
    ):
        self.client = client
        self.notifier = notifier
        self.interval_s = interval_s
        self._sleep = sleep
        self.tracker = tracker or GenerationTracker()
        self._poll_task: Optional[asyncio.Task] = None

    @property
    def generations(self) -> List[Dict[str, Any]]:
        return self.tracker.generations

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def refresh(self) -> List[Dict[str, Any]]:
        """
        Fetch the generation list and raise notifications for completions

        Raises:
            httpx.HTTPError: If the fetch fails
        """
        response = await self.client.get("/api/generations")
        response.raise_for_status()
        fetched = response.json().get("generations") or []

        update = self.tracker.apply(fetched)

        if update.should_request_permission:
            granted = await self.notifier.request_permission()
            logger.info("notification_permission_requested", granted=granted)

        for generation in update.newly_completed:
            logger.info("generation_ready_notification", generation_id=generation["id"])
            try:
                await self.notifier.notify(
                    notification_title(generation),
                    notification_body(generation),
                    generation,
                )
            except Exception as e:
                logger.error(
                    "generation_notification_failed",
                    generation_id=generation["id"],
                    error=str(e),
                    error_type=type(e).__name__,
                )

        return update.generations

    async def start(self) -> List[Dict[str, Any]]:
        generations = await self.refresh()
        self._ensure_polling()
        return generations

    async def on_focus(self) -> List[Dict[str, Any]]:
        generations = await self.refresh()
        self._ensure_polling()
        return generations

    def _ensure_polling(self) -> None:
        if self.tracker.has_pending and not self.is_polling:
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        while self.tracker.has_pending:
            await self._sleep(self.interval_s)
            try:
                await self.refresh()
            except httpx.HTTPError as e:
                logger.warning("generations_poll_failed", error=str(e))
            except Exception as e:
                logger.error(
                    "generations_poll_error",
                    error=str(e),
                    error_type=type(e).__name__,
                )
        logger.info("generations_polling_stopped")

    async def delete(self, generation_id: int) -> bool:
        """
        Delete a generation optimistically

        The row disappears from ``generations`` at once and comes back if
        the server rejects the delete.

        Returns:
            True if the server accepted the delete
        """
        index = self.tracker.order.index(generation_id) if generation_id in self.tracker.order else 0
        removed = self.tracker.remove_locally(generation_id)

        try:
            response = await self.client.delete(f"/api/generations/{generation_id}")
            if response.status_code != 404:
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("generation_delete_failed", generation_id=generation_id, error=str(e))
            if removed is not None:
                self.tracker.restore(removed, index=index)
            else:
                self.tracker.pending_deletes.discard(generation_id)
            return False

        return True

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
