"""Human-in-the-loop review service for suspended planning workflows."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..core.edges import REQUIRED_APPROVALS
from ..models.state_models import (
    AgentRole,
    DecisionType,
    PendingDecision,
    PlanningStage,
    StateUpdate,
    utc_now,
)
from ..models.workflow_models import StepResult
from .workflow_service import WorkflowOrchestrator

logger = logging.getLogger(__name__)

APPROVAL_DECISIONS = frozenset({DecisionType.SERVICE_APPROVAL, DecisionType.COST_APPROVAL})


def _review_message(content: str) -> Dict[str, Any]:
    return {
        "role": AgentRole.HUMAN_REVIEWER.value,
        "content": content,
        "timestamp": utc_now().isoformat(),
    }


class HumanReviewService:
    """
    Human-in-the-loop review service.

    Turns reviewer actions (approvals, documents, resolved decisions, cleared
    errors) into resume payloads for the workflow engine.
    """

    def __init__(self, orchestrator: WorkflowOrchestrator):
        """
        Initialize human review service.

        Args:
            orchestrator: Workflow engine the reviews resume
        """
        self.orchestrator = orchestrator

    async def get_pending_decisions(self, thread_id: str) -> List[PendingDecision]:
        """Decisions the thread is waiting on."""
        status = await self.orchestrator.get_status(thread_id)
        return status.pending_decisions

    async def get_errors(self, thread_id: str) -> List[str]:
        """Errors recorded on the thread."""
        status = await self.orchestrator.get_status(thread_id)
        return status.errors

    async def _resume_without(
        self,
        thread_id: str,
        keep: List[PendingDecision],
        update: StateUpdate,
    ) -> StepResult:
        # pending_decisions is append-only: clear it, then re-add what remains
        if keep:
            update.pending_decisions = keep
        return await self.orchestrator.resume(thread_id, update, clear=["pending_decisions"])

    async def approve(
        self,
        thread_id: str,
        approver_roles: Iterable[str],
        notes: Optional[str] = None,
    ) -> StepResult:
        """
        Record approvals and resume the workflow.

        Roles already recorded are not appended again. Service and cost approval
        decisions are resolved; other pending decisions stay.

        Args:
            thread_id: Workflow thread
            approver_roles: Roles granting approval (family, director, venue)
            notes: Optional reviewer notes

        Returns:
            Step result after resuming
        """
        roles = list(dict.fromkeys(approver_roles))
        unknown = set(roles) - REQUIRED_APPROVALS
        if unknown:
            raise ValueError(f"Unknown approver roles: {sorted(unknown)}")

        status = await self.orchestrator.get_status(thread_id)
        already = set(status.state.approvals)
        new_roles = [role for role in roles if role not in already]
        keep = [d for d in status.pending_decisions if d.type not in APPROVAL_DECISIONS]

        content = f"Approved by: {', '.join(roles) or 'nobody'}"
        if notes:
            content = f"{content}. {notes}"
        update = StateUpdate(
            approvals=new_roles or None,
            messages=[_review_message(content)],
        )

        logger.info(f"Approval submitted for {thread_id} by {roles}")
        return await self._resume_without(thread_id, keep, update)

    async def provide_documents(
        self,
        thread_id: str,
        documents: Iterable[str],
        notes: Optional[str] = None,
    ) -> StepResult:
        """
        Record collected documents and resume the workflow.

        Args:
            thread_id: Workflow thread
            documents: Document names now collected
            notes: Optional reviewer notes

        Returns:
            Step result after resuming
        """
        status = await self.orchestrator.get_status(thread_id)
        collected = set(status.state.documents_collected)
        new_documents = [d for d in dict.fromkeys(documents) if d not in collected]
        keep = [
            d for d in status.pending_decisions if d.type != DecisionType.DOCUMENT_COLLECTION
        ]

        content = f"Documents received: {', '.join(new_documents) or 'none'}"
        if notes:
            content = f"{content}. {notes}"
        update = StateUpdate(
            documents_collected=new_documents or None,
            messages=[_review_message(content)],
        )

        logger.info(f"Documents provided for {thread_id}: {new_documents}")
        return await self._resume_without(thread_id, keep, update)

    async def resolve_decisions(
        self,
        thread_id: str,
        decision_ids: Optional[Iterable[str]] = None,
        update: Optional[StateUpdate] = None,
        notes: Optional[str] = None,
    ) -> StepResult:
        """
        Resolve pending decisions and resume the workflow.

        Args:
            thread_id: Workflow thread
            decision_ids: Decisions to resolve (all when omitted)
            update: Values supplied by the reviewer
            notes: Optional reviewer notes

        Returns:
            Step result after resuming
        """
        status = await self.orchestrator.get_status(thread_id)
        if decision_ids is None:
            resolved = {d.decision_id for d in status.pending_decisions}
        else:
            resolved = set(decision_ids)
            unknown = resolved - {d.decision_id for d in status.pending_decisions}
            if unknown:
                raise ValueError(f"Unknown decisions for {thread_id}: {sorted(unknown)}")

        keep = [d for d in status.pending_decisions if d.decision_id not in resolved]

        update = update.model_copy() if update is not None else StateUpdate()
        message = _review_message(notes or f"Resolved {len(resolved)} decision(s)")
        update.messages = list(update.messages or []) + [message]

        logger.info(f"Resolved {len(resolved)} decision(s) for {thread_id}")
        return await self._resume_without(thread_id, keep, update)

    async def clear_errors(
        self,
        thread_id: str,
        stage: Optional[str] = None,
        run: bool = True,
    ) -> StepResult:
        """
        Clear recorded errors so the workflow can leave the ERROR stage.

        Args:
            thread_id: Workflow thread
            stage: Stage to continue from (routing falls back to requirements
                gathering when omitted)
            run: Continue execution after clearing

        Returns:
            Step result
        """
        if stage is not None:
            if PlanningStage(stage) == PlanningStage.ERROR:
                raise ValueError("Cannot continue from the error stage")

        update = StateUpdate(
            planning_stage=stage,
            current_agent=AgentRole.ORCHESTRATOR.value,
            messages=[_review_message("Errors cleared")],
        )
        result = await self.orchestrator.update_state(thread_id, update, clear=["errors"])
        logger.info(f"Cleared errors for {thread_id}")

        if not run:
            return result
        return await self.orchestrator.run(thread_id)
