"""Workflow orchestration service: drives the planning graph over the checkpoint store."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, Optional, Tuple

from ..core.checkpoints import CheckpointHistory, next_checkpoint_timestamp
from ..core.edges import is_halted
from ..core.state import (
    bump_channel_versions,
    clear_channels,
    create_initial_state,
    merge_state,
)
from ..core.workflow import WorkflowGraph, create_workflow
from ..exceptions import ThreadNotFoundError, WorkflowAlreadyStartedError
from ..models.checkpoint_models import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointSource,
    CheckpointTuple,
    ThreadRef,
)
from ..models.state_models import (
    PlanningStage,
    PlanningState,
    StateUpdate,
    WorkflowStatus,
)
from ..models.workflow_models import StepResult, WorkflowConfig
from .checkpoint_service import TieredCheckpointStore

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """
    Executes the planning workflow one checkpointed step at a time.

    Every node execution is merged into the accumulated state and persisted as
    a new checkpoint before the next node runs, so a thread can be resumed
    from the store after a restart. Steps on the same thread are serialized;
    different threads run concurrently.
    """

    def __init__(
        self,
        store: TieredCheckpointStore,
        graph: Optional[WorkflowGraph] = None,
        config: Optional[WorkflowConfig] = None,
    ):
        """
        Initialize workflow orchestrator.

        Args:
            store: Checkpoint store
            graph: Workflow graph (built from ``config`` when omitted)
            config: Engine configuration
        """
        self.store = store
        self.config = config or WorkflowConfig()
        self.graph = graph or create_workflow(
            enable_human_approval=self.config.enable_human_approval,
            interrupt_before=self.config.interrupt_before,
        )
        self.history = CheckpointHistory(store, checkpoint_ns=self.config.checkpoint_ns)
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[str, str], int] = {}

    def _ref(self, thread_id: str) -> ThreadRef:
        return ThreadRef(thread_id=thread_id, checkpoint_ns=self.config.checkpoint_ns)

    @asynccontextmanager
    async def _lock(self, thread_id: str) -> AsyncIterator[None]:
        """Serialize steps on one thread; dropped once nobody holds or awaits it."""
        key = (thread_id, self.config.checkpoint_ns)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _load_head(self, thread_id: str) -> CheckpointTuple:
        head = await self.store.get(self._ref(thread_id))
        if head is None:
            raise ThreadNotFoundError(thread_id, self.config.checkpoint_ns)
        return head

    def _evaluate(self, state: PlanningState) -> Tuple[WorkflowStatus, str]:
        """Status of a persisted state and the node the router picks next."""
        next_node = self.graph.router(state)
        if is_halted(state, next_node):
            if state.planning_stage == PlanningStage.ERROR.value:
                return WorkflowStatus.ERROR, next_node
            return WorkflowStatus.COMPLETED, next_node
        if self.graph.is_interrupt(next_node):
            return WorkflowStatus.INTERRUPTED, next_node
        return WorkflowStatus.RUNNING, next_node

    def _result(self, head: CheckpointTuple, steps: int = 0) -> StepResult:
        state = head.checkpoint.channel_values
        status, next_node = self._evaluate(state)
        return StepResult(
            thread_id=head.ref.thread_id,
            checkpoint_ns=head.ref.checkpoint_ns,
            checkpoint_id=head.checkpoint.id,
            status=status,
            stage=state.planning_stage,
            next_node=None if status == WorkflowStatus.COMPLETED else next_node,
            steps_executed=steps,
            errors=list(state.errors),
            pending_decisions=list(state.pending_decisions),
            state=state,
        )

    async def _persist(
        self,
        head: Optional[CheckpointTuple],
        state: PlanningState,
        written: Iterable[str],
        source: CheckpointSource,
        thread_id: str,
        metadata: Optional[CheckpointMetadata] = None,
    ) -> CheckpointTuple:
        """Write ``state`` as the new head of the thread."""
        parent = head.checkpoint if head else None
        base = head.metadata if head else (metadata or CheckpointMetadata())
        timestamp = state.timestamp

        versions = bump_channel_versions(parent.channel_versions if parent else {}, written)

        _, next_node = self._evaluate(state)
        pending = [next_node] if self.graph.is_interrupt(next_node) else []

        checkpoint = Checkpoint(
            parent_id=parent.id if parent else None,
            version=parent.version + 1 if parent else 1,
            timestamp=timestamp,
            channel_values=state,
            channel_versions=versions,
            pending_sends=pending,
        )
        metadata = base.model_copy(
            update={
                "workflow_id": base.workflow_id or thread_id,
                "stage": state.planning_stage,
                "timestamp": timestamp,
                "version": checkpoint.version,
                "source": source,
                "step": head.metadata.step + 1 if head else 0,
            }
        )

        ref = await self.store.put(self._ref(thread_id), checkpoint, metadata)
        return CheckpointTuple(
            ref=ref,
            checkpoint=checkpoint,
            metadata=metadata,
            parent_ref=ref.with_checkpoint(parent.id) if parent else None,
        )

    async def _execute(self, head: CheckpointTuple, node_name: str) -> CheckpointTuple:
        """Run one node against the head state and persist the result."""
        thread_id = head.ref.thread_id
        state = head.checkpoint.channel_values
        node = self.graph.get_node(node_name)

        logger.info(f"Executing {node_name} node for thread {thread_id}")
        try:
            update = await node(state)
        except Exception as e:
            logger.exception(f"Node {node_name} failed for thread {thread_id}")
            update = StateUpdate(errors=[f"{node_name} failed: {e}"])

        timestamp = next_checkpoint_timestamp(head.checkpoint)
        merged = merge_state(state, update, timestamp=timestamp)
        written = update.written_fields() + ["timestamp"]
        return await self._persist(head, merged, written, CheckpointSource.LOOP, thread_id)

    async def _apply_update(
        self,
        head: CheckpointTuple,
        update: Optional[StateUpdate],
        clear: Iterable[str],
    ) -> CheckpointTuple:
        clear = list(clear)
        state = head.checkpoint.channel_values
        if clear:
            state = clear_channels(state, clear)

        update = update or StateUpdate()
        timestamp = next_checkpoint_timestamp(head.checkpoint)
        merged = merge_state(state, update, timestamp=timestamp)
        written = set(update.written_fields()) | set(clear) | {"timestamp"}

        logger.info(
            f"Applying external update to {head.ref.thread_id} "
            f"(fields: {sorted(written - {'timestamp'})})"
        )
        return await self._persist(
            head, merged, sorted(written), CheckpointSource.UPDATE, head.ref.thread_id
        )

    async def _drive(
        self,
        head: CheckpointTuple,
        max_steps: int,
        first_node: Optional[str] = None,
    ) -> StepResult:
        """
        Execute nodes until the workflow suspends, halts or hits ``max_steps``.

        ``first_node`` runs unconditionally, bypassing its interrupt.
        """
        steps = 0
        node_name = first_node
        while True:
            if node_name is None:
                status, next_node = self._evaluate(head.checkpoint.channel_values)
                if status != WorkflowStatus.RUNNING or steps >= max_steps:
                    break
                node_name = next_node
            head = await self._execute(head, node_name)
            steps += 1
            node_name = None

        result = self._result(head, steps)
        if result.status == WorkflowStatus.INTERRUPTED:
            logger.info(f"Workflow {result.thread_id} interrupted before {result.next_node}")
        elif result.status == WorkflowStatus.COMPLETED:
            logger.info(f"Workflow {result.thread_id} completed")
        elif result.status == WorkflowStatus.ERROR:
            logger.warning(
                f"Workflow {result.thread_id} halted with {len(result.errors)} error(s)"
            )
        return result

    async def start(
        self,
        thread_id: str,
        initial: Optional[StateUpdate] = None,
        metadata: Optional[CheckpointMetadata] = None,
        run: bool = True,
    ) -> StepResult:
        """
        Start a new workflow thread.

        Args:
            thread_id: Thread identifier
            initial: Values merged over the default initial state
            metadata: Metadata carried by every checkpoint of the thread
            run: Run until the first interrupt (otherwise only persist)

        Returns:
            Step result

        Raises:
            WorkflowAlreadyStartedError: If the thread already has checkpoints
        """
        async with self._lock(thread_id):
            if await self.store.get(self._ref(thread_id)) is not None:
                raise WorkflowAlreadyStartedError(thread_id)

            state = create_initial_state(initial)
            logger.info(f"Starting workflow {thread_id}")
            head = await self._persist(
                None,
                state,
                list(PlanningState.model_fields),
                CheckpointSource.INPUT,
                thread_id,
                metadata=metadata,
            )
            if not run:
                return self._result(head)
            return await self._drive(head, self.config.max_steps_per_run)

    async def step(self, thread_id: str, resume: bool = False) -> StepResult:
        """
        Execute at most one node.

        Args:
            thread_id: Thread identifier
            resume: Run the node the thread is suspended before

        Returns:
            Step result (``steps_executed`` is 0 when nothing ran)
        """
        async with self._lock(thread_id):
            head = await self._load_head(thread_id)
            pending = head.checkpoint.pending_sends
            first_node = pending[0] if resume and pending else None
            return await self._drive(head, max_steps=1, first_node=first_node)

    async def run(self, thread_id: str) -> StepResult:
        """Run until the workflow suspends, halts or hits the step bound."""
        async with self._lock(thread_id):
            head = await self._load_head(thread_id)
            return await self._drive(head, self.config.max_steps_per_run)

    async def resume(
        self,
        thread_id: str,
        update: Optional[StateUpdate] = None,
        clear: Iterable[str] = (),
    ) -> StepResult:
        """
        Resume a suspended workflow.

        The resume payload is applied first and the router is asked again. If it
        still picks the node the workflow was suspended before, that node runs
        past its interrupt; otherwise (errors recorded, decisions resolved)
        execution follows the new route. Either way it continues as in ``run``.

        Args:
            thread_id: Thread identifier
            update: Resume payload merged through the reducers
            clear: Channels reset to empty before the payload is merged

        Returns:
            Step result
        """
        async with self._lock(thread_id):
            head = await self._load_head(thread_id)
            pending = list(head.checkpoint.pending_sends)
            clear = list(clear)
            if update is not None or clear:
                head = await self._apply_update(head, update, clear)

            first_node = None
            if pending:
                routed = self.graph.router(head.checkpoint.channel_values)
                if routed == pending[0]:
                    first_node = routed
                    logger.info(f"Resuming {thread_id} at {first_node}")
                else:
                    logger.info(f"Resuming {thread_id}: rerouted from {pending[0]} to {routed}")
            return await self._drive(head, self.config.max_steps_per_run, first_node=first_node)

    async def update_state(
        self,
        thread_id: str,
        update: Optional[StateUpdate] = None,
        clear: Iterable[str] = (),
    ) -> StepResult:
        """
        Apply an external state update without running any node.

        ``clear`` is the only way to remove entries from append-only channels,
        e.g. ``clear=["errors"]`` to leave the ERROR stage.
        """
        async with self._lock(thread_id):
            head = await self._load_head(thread_id)
            head = await self._apply_update(head, update, clear)
            return self._result(head)

    async def rollback(
        self,
        thread_id: str,
        checkpoint_id: Optional[str] = None,
        version: Optional[int] = None,
    ) -> StepResult:
        """
        Restore an earlier checkpoint as the new head.

        Exactly one of ``checkpoint_id`` and ``version`` must be given.
        """
        if (checkpoint_id is None) == (version is None):
            raise ValueError("Specify exactly one of checkpoint_id or version")

        async with self._lock(thread_id):
            await self._load_head(thread_id)
            if checkpoint_id is not None:
                head = await self.history.rollback_to_checkpoint(thread_id, checkpoint_id)
            else:
                head = await self.history.rollback_to_version(thread_id, version)
            return self._result(head)

    async def get_state(
        self,
        thread_id: str,
        checkpoint_id: Optional[str] = None,
    ) -> Optional[CheckpointTuple]:
        """Load the latest (or a specific) checkpoint of a thread."""
        ref = self._ref(thread_id).with_checkpoint(checkpoint_id)
        return await self.store.get(ref)

    async def get_status(self, thread_id: str) -> StepResult:
        """Report the thread's status without executing anything."""
        head = await self._load_head(thread_id)
        return self._result(head)
