"""Sync orchestration logic for the offline mutation queues."""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Optional

from shared.models import FlushResult, QueueEntry, SubmitResult
from services.sync_service.connectivity import ConnectivityProbe
from services.sync_service.queues import MutationQueue, UnsupportedOperationError

logger = logging.getLogger(__name__)

EntryCallback = Callable[[QueueEntry, Optional[str]], Any]
ErrorCallback = Callable[[QueueEntry, Exception], Any]


class SyncOrchestrator:
    """Drains one domain's mutation queue against the remote store.

    At most one flush runs per orchestrator at a time; a flush requested
    while another is in flight returns the current backlog without doing
    any work.
    """

    def __init__(self, queue: MutationQueue, connectivity: ConnectivityProbe):
        """
        Initialize the sync orchestrator.

        Args:
            queue: The mutation queue to drain
            connectivity: Reachability probe consulted once per flush
        """
        self.queue = queue
        self.connectivity = connectivity
        self._flush_lock = asyncio.Lock()

    @property
    def domain(self) -> str:
        return self.queue.domain

    @property
    def is_flushing(self) -> bool:
        return self._flush_lock.locked()

    async def submit(
        self,
        profile_id: str,
        operation: str,
        payload: Dict[str, Any]
    ) -> SubmitResult:
        """
        Write online-first, falling back to the durable queue.

        The write is applied immediately when the remote store is reachable.
        If the device is offline, or the direct write fails, the mutation is
        queued for a later flush.

        Args:
            profile_id: Owning profile
            operation: create, update or delete
            payload: Operation data

        Returns:
            SubmitResult with status ``applied`` or ``queued``

        Raises:
            UnsupportedOperationError: If the domain does not support ``operation``
            ValueError: If an update or delete does not name its target record
        """
        operation = getattr(operation, "value", operation)
        self.queue.validate(operation, payload)

        if await self.connectivity.is_online():
            entry = self.queue.build_entry(profile_id, operation, payload)
            try:
                remote_id = await self.queue.apply(entry)
                logger.info(f"Applied {self.domain} {operation} for profile {profile_id} directly")
                return SubmitResult(status="applied", remote_id=remote_id)
            except Exception as e:
                logger.warning(f"Direct {self.domain} {operation} failed, queueing instead: {e}")
                queued = self.queue.enqueue(profile_id, operation, payload)
                return SubmitResult(status="queued", entry=queued, error=str(e))

        logger.info(f"Offline, queueing {self.domain} {operation} for profile {profile_id}")
        queued = self.queue.enqueue(profile_id, operation, payload)
        return SubmitResult(status="queued", entry=queued)

    async def flush(
        self,
        profile_id: Optional[str] = None,
        on_processed: Optional[EntryCallback] = None,
        on_error: Optional[ErrorCallback] = None
    ) -> FlushResult:
        """
        Apply queued entries in enqueue order.

        This is the main drain loop that:
        1. Short-circuits if another flush of this queue is running
        2. Returns immediately for an empty queue
        3. Fails fast, consuming nothing, when the store is unreachable
        4. Applies each entry, keeping entries for other profiles untouched
        5. Keeps failed and unrecognized entries and continues with the next
        6. Persists the remaining entries in a single write

        Args:
            profile_id: Only apply entries owned by this profile
            on_processed: Called with each entry applied successfully and the
                record id the store assigned to a create (None otherwise)
            on_error: Called with each entry that failed and its exception.
                Either callback may be a coroutine function.

        Returns:
            FlushResult with synced and remaining counts
        """
        if self._flush_lock.locked():
            backlog = len(self.queue.list_queued(profile_id))
            logger.info(f"{self.domain} flush already in progress, {backlog} entries pending")
            return FlushResult(synced=0, remaining=backlog)

        async with self._flush_lock:
            snapshot = self.queue.store.read()
            if not snapshot:
                return FlushResult(synced=0, remaining=0)

            if not await self.connectivity.is_online():
                logger.info(f"Offline, leaving {len(snapshot)} {self.domain} entries queued")
                return FlushResult(synced=0, remaining=len(snapshot))

            logger.info(f"Flushing {len(snapshot)} {self.domain} entries (profile={profile_id})")

            synced = 0
            remaining = []

            for raw in snapshot:
                try:
                    entry = QueueEntry.from_dict(raw)
                except (KeyError, TypeError, ValueError):
                    logger.warning(f"Keeping malformed {self.domain} queue entry: {raw}")
                    remaining.append(raw)
                    continue

                if profile_id and entry.profile_id != profile_id:
                    remaining.append(raw)
                    continue

                try:
                    remote_id = await self.queue.apply(entry)
                except UnsupportedOperationError as e:
                    logger.warning(f"{e}, keeping entry {entry.entry_id}")
                    remaining.append(raw)
                    continue
                except Exception as e:
                    logger.warning(f"Failed to flush {self.domain} queue entry {entry.entry_id}: {e}")
                    remaining.append(raw)
                    await self._run_callback(on_error, entry, e)
                    continue

                synced += 1
                await self._run_callback(on_processed, entry, remote_id)

            # The queue may have changed while the drain awaited the remote
            # store: removed entries stay removed, new ones are appended.
            snapshot_ids = {raw.get("entry_id") for raw in snapshot}
            current = self.queue.store.read()
            current_ids = {raw.get("entry_id") for raw in current}

            remaining = [raw for raw in remaining if raw.get("entry_id") in current_ids]
            remaining.extend(raw for raw in current if raw.get("entry_id") not in snapshot_ids)
            self.queue.store.write(remaining)

            logger.info(f"{self.domain} flush completed: {synced} synced, {len(remaining)} remaining")
            return FlushResult(synced=synced, remaining=len(remaining))

    async def _run_callback(self, callback: Optional[Callable], *args):
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"{self.domain} flush callback raised: {e}", exc_info=True)
