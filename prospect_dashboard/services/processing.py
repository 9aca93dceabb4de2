"""
Processing Runs

One call to ``DateProcessor.process`` runs one batch of classification for a
date:

1. Acquire the date's processing lock or fail with LockBusyError.
2. Load the snapshot, send retryable failures back to pending, claim up to
   ``batch_size`` pending records (status ``processing``, stamped with the
   lease token) and persist the claim. A run is started when none is active.
3. Classify the claimed records with bounded parallelism under the
   wall-clock budget. Calls still running when the budget ends are
   cancelled.
4. Re-read the snapshot and apply each finished result, but only to records
   still in ``processing`` under this batch's token; a reset, a stop or a
   later batch that took over an expired lease wins. Claimed records without
   a result go back to ``pending``.
5. Persist, update the run statistics and complete the run once no
   non-terminal record is left.
6. Release the lock, whatever happened.

Records found in ``processing`` while the lock is held belong to a batch
whose lease expired; step 2 returns them to pending. The lease TTL is
configured above the budget plus one classification timeout, so a live
batch normally keeps its lease until it has applied its results.
"""

import asyncio
import logging
from typing import Optional

from prospect_dashboard.core.config import Settings
from prospect_dashboard.core.locks import DateLockManager
from prospect_dashboard.models import ProcessDateResponse, ProcessingStatus
from prospect_dashboard.services import state_machine
from prospect_dashboard.services.classifier import Classifier
from prospect_dashboard.services.snapshots import SnapshotRepository, complete_run, start_run

logger = logging.getLogger(__name__)


class DateProcessor:
    """
    Runs classification batches against daily snapshots.

    Args:
        repository: Snapshot repository.
        classifier: Conversation classifier.
        lock_manager: Processing lock table.
        concurrency: Maximum classification calls in flight.
        budget_seconds: Wall-clock budget of one batch.
        max_retries: Failed attempts after which a record is terminal.
        batch_size: Default number of records claimed per batch.
    """

    def __init__(
        self,
        repository: SnapshotRepository,
        classifier: Classifier,
        lock_manager: DateLockManager,
        concurrency: int = 10,
        budget_seconds: float = 300.0,
        max_retries: int = 3,
        batch_size: int = 50,
    ):
        self.repository = repository
        self.classifier = classifier
        self.lock_manager = lock_manager
        self.concurrency = concurrency
        self.budget_seconds = budget_seconds
        self.max_retries = max_retries
        self.batch_size = batch_size

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        repository: SnapshotRepository,
        classifier: Classifier,
        lock_manager: DateLockManager,
    ) -> "DateProcessor":
        return cls(
            repository=repository,
            classifier=classifier,
            lock_manager=lock_manager,
            concurrency=settings.classification_concurrency,
            budget_seconds=settings.processing_budget_seconds,
            max_retries=settings.max_retries,
            batch_size=settings.process_batch_size,
        )

    # =========================================================================
    # Batch
    # =========================================================================

    async def process(self, date: str, batch_size: Optional[int] = None) -> ProcessDateResponse:
        """
        Run one processing batch for ``date``.

        Raises:
            LockBusyError: If the date is already being processed.
            NotFoundError: If there is no snapshot for the date.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.budget_seconds
        batch_size = batch_size or self.batch_size

        lease = await self.lock_manager.acquire(date)
        try:
            async with self.repository.edit(date) as snapshot:
                for record in snapshot.results:
                    if state_machine.is_retryable(record, self.max_retries):
                        state_machine.retry(record, self.max_retries)
                    elif record.processingStatus == ProcessingStatus.PROCESSING:
                        # left over by a batch whose lock expired
                        state_machine.release(record)

                claimed = [
                    record for record in snapshot.results
                    if record.processingStatus == ProcessingStatus.PENDING
                ][:batch_size]
                for record in claimed:
                    state_machine.claim(record, lease.token)

                if claimed and snapshot.currentRunId is None:
                    start_run(snapshot)
                run_id = snapshot.currentRunId
                items = [(record.id, record.messages) for record in claimed]

            if not items:
                return await self._finish_without_work(date)

            logger.info(f"Processing {len(items)} conversations for {date} (run {run_id})")
            outcome = await self.classifier.classify_batch(
                items,
                concurrency=self.concurrency,
                timeout=deadline - loop.time(),
            )

            if not await self.lock_manager.owns(lease):
                logger.warning(
                    f"Processing lock for {date} expired during the batch; "
                    f"applying results only to records still claimed by it"
                )

            success_count = 0
            failure_count = 0
            batch_cost = 0.0
            stale = 0
            async with self.repository.edit(date) as snapshot:
                for record_id, _ in items:
                    result = outcome.results.get(record_id)
                    record = snapshot.find(record_id)
                    if record is None or not state_machine.is_claimed_by(record, lease.token):
                        stale += 1
                        if result is not None:
                            # paid for even though the result is dropped
                            batch_cost += result.cost
                        continue
                    if result is None:
                        state_machine.release(record)
                        continue
                    state_machine.complete(record, result)
                    batch_cost += result.cost
                    if result.success:
                        success_count += 1
                    else:
                        failure_count += 1

                run = snapshot.run(run_id)
                if run is not None:
                    run.totalCost += batch_cost
                    run.successCount += success_count
                    run.failureCount += failure_count
                    run.conversationsProcessed += success_count + failure_count

                remaining = sum(
                    1 for record in snapshot.results
                    if not state_machine.is_terminal(record, self.max_retries)
                )
                is_complete = remaining == 0
                if is_complete and snapshot.currentRunId == run_id:
                    complete_run(snapshot, run_id)

            if stale:
                logger.info(f"Skipped {stale} records of {date} changed during processing")

            if outcome.timed_out:
                message = f"Time budget reached: processed {success_count + failure_count} of {len(items)} conversations"
            elif is_complete:
                message = "All conversations processed"
            else:
                message = f"Processed {success_count + failure_count} conversations, {remaining} remaining"
            logger.info(
                f"{date}: {success_count} succeeded, {failure_count} failed, "
                f"cost ${batch_cost:.4f}, {remaining} remaining"
            )

            return ProcessDateResponse(
                message=message,
                date=date,
                processedInBatch=success_count,
                failedInBatch=failure_count,
                batchCost=batch_cost,
                totalProcessed=snapshot.processedCount,
                totalConversations=snapshot.totalConversations,
                remaining=remaining,
                isComplete=is_complete,
                timedOut=outcome.timed_out,
                runStats=snapshot.run(run_id),
            )
        finally:
            released = await self.lock_manager.release(lease)
            if not released:
                logger.warning(f"Processing lock for {date} had expired before release")

    async def _finish_without_work(self, date: str) -> ProcessDateResponse:
        """Nothing left to claim: complete an open run and report."""
        async with self.repository.edit(date) as snapshot:
            remaining = sum(
                1 for record in snapshot.results
                if not state_machine.is_terminal(record, self.max_retries)
            )
            run_id = snapshot.currentRunId
            if remaining == 0 and run_id is not None:
                complete_run(snapshot, run_id)

        return ProcessDateResponse(
            message="No pending conversations",
            date=date,
            totalProcessed=snapshot.processedCount,
            totalConversations=snapshot.totalConversations,
            remaining=remaining,
            isComplete=remaining == 0,
            runStats=snapshot.run(run_id) if run_id else snapshot.latest_run(),
        )
