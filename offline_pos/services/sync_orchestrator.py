"""
Sync Orchestrator - drains the offline queue against the remote sale endpoint

Triggers:
- offline -> online transition (after a short settle delay)
- periodic sweep while online (cancelled the moment the terminal goes offline)
- manual ``sync_now``
- a single record queued while already online

Sweeps are serialised by a lock and replay records oldest first. Each
record is claimed through the queue manager before submission, so a sale
is never posted twice concurrently, whichever trigger got there first.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Coroutine, Optional, Protocol, Set

from offline_pos.core.exceptions import RemoteError, SaleRejectedError
from offline_pos.core.observability import sync_run
from offline_pos.core.time_utils import utcnow
from offline_pos.schemas.sale import SaleSubmission, SaleSubmissionResult
from offline_pos.schemas.sync import NetworkStatus, SyncResult
from offline_pos.services.network_monitor import NetworkStatusMonitor
from offline_pos.services.queue_manager import TransactionQueueManager

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILED = "failed"
SKIPPED = "skipped"


class SaleSubmitter(Protocol):
    async def submit_sale(self, submission: SaleSubmission) -> SaleSubmissionResult:
        ...


class SyncOrchestrator:
    """Schedules and runs sync sweeps."""

    def __init__(
        self,
        manager: TransactionQueueManager,
        client: SaleSubmitter,
        monitor: NetworkStatusMonitor,
        sync_interval: float = 300.0,
        reconnect_delay: float = 1.0,
        immediate_delay: float = 0.1,
        request_timeout: float = 10.0,
    ):
        self.manager = manager
        self.client = client
        self.monitor = monitor
        self.sync_interval = sync_interval
        self.reconnect_delay = reconnect_delay
        self.immediate_delay = immediate_delay
        self.request_timeout = request_timeout

        self._sweep_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._periodic_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._next_sync_at: Optional[datetime] = None
        self._was_online: Optional[bool] = None
        self._unsubscribe = None

        manager.bind_sync_trigger(self.schedule_transaction_sync, lambda: self.next_sync_attempt)

    # ==================== LIFECYCLE ====================

    def start(self) -> None:
        """Follow the monitor; arms the periodic sweep if already online."""
        if self._unsubscribe is None:
            self._unsubscribe = self.monitor.subscribe(self._on_status)

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._disarm()
        await self.wait_idle()
        self._was_online = None

    async def wait_idle(self) -> None:
        """Wait for every triggered (non-periodic) sync task to finish."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    @property
    def next_sync_attempt(self) -> Optional[datetime]:
        if self._periodic_task is None or self._periodic_task.done():
            return None
        return self._next_sync_at

    # ==================== TRIGGERS ====================

    def _on_status(self, status: NetworkStatus) -> None:
        previous = self._was_online
        self._was_online = status.is_online
        if status.is_online:
            self._arm_periodic()
            if previous is False:
                self._schedule_reconnect_sync()
        else:
            self._disarm()

    def _arm_periodic(self) -> None:
        if self._periodic_task is not None and not self._periodic_task.done():
            return
        self._periodic_task = asyncio.get_running_loop().create_task(self._periodic_loop())

    def _disarm(self) -> None:
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            self._periodic_task = None
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None
        self._next_sync_at = None

    async def _periodic_loop(self) -> None:
        while True:
            self._next_sync_at = utcnow() + timedelta(seconds=self.sync_interval)
            await asyncio.sleep(self.sync_interval)
            self.spawn(self._sweep_in_background("periodic"), "periodic-sweep")

    def _schedule_reconnect_sync(self) -> None:
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
        self._reconnect_task = self.spawn(self._delayed_sweep(), "reconnect-sync")

    async def _delayed_sweep(self) -> None:
        await asyncio.sleep(self.reconnect_delay)
        self.spawn(self._sweep_in_background("reconnect"), "reconnect-sweep")

    def schedule_transaction_sync(self, transaction_id: str) -> asyncio.Task:
        """Sync one freshly queued record shortly, without blocking the caller."""
        return self.spawn(self._delayed_single(transaction_id), f"sync-{transaction_id}")

    async def _delayed_single(self, transaction_id: str) -> None:
        await asyncio.sleep(self.immediate_delay)
        try:
            await self.sync_transaction(transaction_id)
        except Exception as e:
            logger.error(f"Immediate sync of {transaction_id} failed: {e}", exc_info=True)

    async def _sweep_in_background(self, trigger: str) -> None:
        try:
            result = await self.sync_pending_transactions()
        except Exception as e:
            logger.error(f"{trigger} sync sweep aborted: {e}", exc_info=True)
            return
        logger.debug(f"{trigger} sync sweep finished: {result}")

    def spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ==================== SYNC ====================

    async def sync_now(self) -> SyncResult:
        """Manual "sync now"."""
        logger.info("Manual sync requested")
        return await self.sync_pending_transactions()

    async def sync_pending_transactions(self) -> SyncResult:
        """Submit every eligible record, oldest first.

        Returns zero counts without any network I/O while offline. A call
        made while another sweep runs waits for it, then sweeps whatever is
        still eligible. Remote failures are recorded per record; storage
        failures abort the sweep and propagate.
        """
        if not self.monitor.is_online:
            logger.debug("Offline, skipping sync sweep")
            return SyncResult()

        async with self._sweep_lock:
            if not self.monitor.is_online:
                return SyncResult()

            with sync_run() as run_id:
                pending = await self.manager.get_pending_transactions()
                logger.info(f"Sync sweep {run_id} started with {len(pending)} eligible transactions")

                counts = {SUCCESS: 0, FAILED: 0, SKIPPED: 0}
                for transaction in pending:
                    if not self.monitor.is_online:
                        logger.warning("Connection lost mid-sweep, stopping")
                        break
                    outcome = await self._attempt(transaction.id)
                    counts[outcome] += 1

                await self.manager.record_sync_attempt()
                result = SyncResult(success=counts[SUCCESS], failed=counts[FAILED], skipped=counts[SKIPPED])
                logger.info(
                    f"Sync sweep {run_id} finished: {result.success} synced, "
                    f"{result.failed} failed, {result.skipped} skipped",
                    extra={"success": result.success, "failed": result.failed, "skipped": result.skipped},
                )
                return result

    async def sync_transaction(self, transaction_id: str) -> Optional[str]:
        """Attempt a single record; returns the outcome, None when offline."""
        if not self.monitor.is_online:
            return None
        return await self._attempt(transaction_id)

    async def _attempt(self, transaction_id: str) -> str:
        if not self.manager.claim(transaction_id):
            logger.debug(f"Transaction {transaction_id} already in flight")
            return SKIPPED
        try:
            # Re-read under the claim: another trigger may have synced it
            transaction = await self.manager.get_transaction(transaction_id)
            if transaction is None or not transaction.is_retryable(self.manager.max_sync_attempts):
                return SKIPPED

            submission = SaleSubmission.from_queued(transaction)
            try:
                result = await asyncio.wait_for(
                    self.client.submit_sale(submission),
                    timeout=self.request_timeout,
                )
            except SaleRejectedError as e:
                await self.manager.mark_rejected(transaction_id, str(e))
                return FAILED
            except asyncio.TimeoutError:
                await self.manager.record_failure(
                    transaction_id, f"Submission timed out after {self.request_timeout}s"
                )
                return FAILED
            except RemoteError as e:
                await self.manager.record_failure(transaction_id, str(e))
                return FAILED
            except Exception as e:
                await self.manager.record_failure(transaction_id, f"{e.__class__.__name__}: {e}")
                return FAILED

            await self.manager.mark_synced(transaction_id, result.sale_id)
            return SUCCESS
        finally:
            self.manager.release(transaction_id)
