from __future__ import annotations

import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, List, Optional, Sequence

from .actions import Click, Type, UIAction, describe
from .config import PortalConfig
from .debug_log import DEBUG_LOG
from .events import (
    ACTION_EXECUTED,
    COMMAND_FINISHED,
    COMMAND_SUBMITTED,
    PLAN_RESOLVED,
    PLANNER_REQUEST,
    STALE_RESPONSE_DROPPED,
    EventWriter,
)
from .executor import ActionExecutor
from .planner import PlannerClient, PlannerError, PlanOutcome, PromptKind
from .snapshot import SnapshotBuilder, UISnapshot

TAG = "Orchestrator"


class CommandState(Enum):
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    REVALIDATING = "revalidating"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Command:
    """One user goal in flight."""

    goal: str
    command_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    reprompt_attempts: int = 0
    planner_calls: int = 0
    last_snapshot: Optional[UISnapshot] = None
    queue: Deque[UIAction] = field(default_factory=deque)
    last_action: Optional[UIAction] = None


@dataclass(frozen=True)
class PlanResolved:
    """Planner result, tagged with the command and snapshot it was computed for."""

    command_id: str
    snapshot_id: str
    kind: PromptKind
    outcome: Optional[PlanOutcome] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class CommandResult:
    command_id: str
    goal: str
    status: str  # completed | failed | superseded
    reason: str
    last_action: Optional[str]
    planner_calls: int
    reprompt_attempts: int
    elements_seen: int


class Orchestrator:
    """
    Drives one command at a time: snapshot -> planner -> execute -> settle ->
    snapshot -> planner ... until the planner says finish or a budget runs out.

    All methods run on the event loop thread. Planner calls go through the
    dispatcher and come back as PlanResolved messages; a message for anything
    but the active command and its latest snapshot is dropped.
    """

    def __init__(
        self,
        provider: Any,
        planner: PlannerClient,
        executor: ActionExecutor,
        loop: Any,
        dispatcher: Any,
        config: Optional[PortalConfig] = None,
        builder: Optional[SnapshotBuilder] = None,
        events: Optional[EventWriter] = None,
        on_finished: Optional[Callable[[CommandResult], None]] = None,
    ) -> None:
        self.provider = provider
        self.planner = planner
        self.executor = executor
        self.loop = loop
        self.dispatcher = dispatcher
        self.config = config or PortalConfig()
        self.builder = builder or SnapshotBuilder(self.config.min_element_size)
        self.events = events
        self.on_finished = on_finished

        self.state = CommandState.IDLE
        self.active: Optional[Command] = None
        self.results: List[CommandResult] = []

    @property
    def busy(self) -> bool:
        return self.active is not None

    def _emit(self, event_type: str, **payload: Any) -> None:
        if self.events is not None:
            self.events.emit(event_type, **payload)

    # Intake

    def submit(self, goal: str) -> str:
        """Starts a new command, superseding the active one if any. Returns the command id."""
        previous = self.active
        if previous is not None:
            DEBUG_LOG.add(TAG, f"Warning: new command received while processing '{previous.goal}'. Overwriting.")
            self._close(previous, "superseded", f"replaced by '{goal}'")
            self.state = CommandState.IDLE

        command = Command(goal=goal)
        self.active = command
        DEBUG_LOG.add(TAG, f"submit: new command '{goal}' ({command.command_id[:8]})")
        self._emit(COMMAND_SUBMITTED, command_id=command.command_id, goal=goal)
        self._request(command, PromptKind.INITIAL)
        return command.command_id

    # Planning

    def _capture(self) -> UISnapshot:
        return self.builder.capture(self.provider.get_root())

    def _request(
        self,
        command: Command,
        kind: PromptKind,
        last_action: Optional[UIAction] = None,
        next_action: Optional[UIAction] = None,
    ) -> None:
        if command.planner_calls >= self.config.max_planner_calls:
            self._fail(command, f"step budget of {self.config.max_planner_calls} planner calls exhausted")
            return

        self.state = CommandState.PLANNING if kind is PromptKind.INITIAL else CommandState.REVALIDATING
        snapshot = self._capture()
        command.last_snapshot = snapshot
        command.planner_calls += 1
        DEBUG_LOG.add(
            TAG,
            f"Requesting {kind.name} for '{command.goal}' (call {command.planner_calls}, "
            f"{len(snapshot.interactive())} interactive elements). "
            f"Last: {describe(last_action)}, next planned: {describe(next_action)}",
        )
        self._emit(
            PLANNER_REQUEST,
            command_id=command.command_id,
            kind=kind.value,
            snapshot_id=snapshot.snapshot_id,
            last_action=describe(last_action),
            next_action=describe(next_action),
        )

        goal, command_id = command.goal, command.command_id

        def work() -> PlanResolved:
            try:
                outcome = self.planner.plan(kind, goal, snapshot, last_action, next_action)
            except PlannerError as exc:
                return PlanResolved(command_id, snapshot.snapshot_id, kind, error=str(exc))
            except Exception as exc:  # noqa: BLE001
                return PlanResolved(command_id, snapshot.snapshot_id, kind, error=f"{type(exc).__name__}: {exc}")
            return PlanResolved(command_id, snapshot.snapshot_id, kind, outcome=outcome)

        self.dispatcher.submit(work, self.on_plan_resolved)

    def on_plan_resolved(self, resolved: PlanResolved) -> None:
        command = self.active
        if (
            command is None
            or resolved.command_id != command.command_id
            or command.last_snapshot is None
            or resolved.snapshot_id != command.last_snapshot.snapshot_id
        ):
            DEBUG_LOG.debug(TAG, f"Ignoring stale planner response for command {resolved.command_id[:8]}.")
            self._emit(STALE_RESPONSE_DROPPED, command_id=resolved.command_id, snapshot_id=resolved.snapshot_id)
            return

        self._emit(
            PLAN_RESOLVED,
            command_id=command.command_id,
            kind=resolved.kind.value,
            error=resolved.error,
            finished=bool(resolved.outcome and resolved.outcome.finished),
            actions=[a.to_dict() for a in resolved.outcome.actions] if resolved.outcome else [],
        )
        if resolved.error is not None:
            self._fail(command, f"planner error: {resolved.error}")
            return

        outcome = resolved.outcome or PlanOutcome()
        if outcome.finished:
            command.queue.clear()
            DEBUG_LOG.add(TAG, f"Received 'finish'. Command '{command.goal}' completed.")
            self.state = CommandState.COMPLETED
            self._close(command, "completed", "planner signalled finish")
            return

        if not outcome.actions:
            DEBUG_LOG.add(TAG, f"Planner returned no actions for '{command.goal}'.")
            self._revalidate_or_fail(command)
            return

        self._enqueue(command, resolved.kind, outcome.actions)
        self._execute_next(command)

    def _revalidate_or_fail(self, command: Command) -> None:
        limit = self.config.max_reprompt_attempts
        if command.reprompt_attempts >= limit:
            self._fail(command, f"no actions after {limit} re-prompt attempts")
            return
        command.reprompt_attempts += 1
        DEBUG_LOG.add(TAG, f"Re-prompting (attempt {command.reprompt_attempts}/{limit}).")
        self._request(command, PromptKind.CONTINUATION_VALIDATE)

    def _enqueue(self, command: Command, kind: PromptKind, actions: Sequence[UIAction]) -> None:
        retained = list(command.queue)
        if kind is PromptKind.CONTINUATION_VALIDATE and retained and actions[0] == retained[0]:
            DEBUG_LOG.add(TAG, f"Planner confirmed the planned next action {retained[0]}; keeping {len(retained)} queued.")
            return
        if retained:
            DEBUG_LOG.add(TAG, f"Planner replaced {len(retained)} queued actions.")
        command.queue.clear()
        command.queue.extend(actions)
        DEBUG_LOG.add(TAG, f"Queued {len(actions)} actions for '{command.goal}'.")

    # Execution

    def _execute_next(self, command: Command) -> None:
        if not command.queue:
            self._request(command, PromptKind.CONTINUATION_VALIDATE, command.last_action, None)
            return

        action = command.queue.popleft()
        command.last_action = action
        self.state = CommandState.EXECUTING
        DEBUG_LOG.add(TAG, f"Executing {action}. Remaining in queue: {len(command.queue)}")

        # Element indices are resolved against the screen as it is now.
        if isinstance(action, (Click, Type)) and action.index is not None:
            snapshot = self._capture()
        else:
            snapshot = command.last_snapshot or UISnapshot()
        result = self.executor.execute(action, snapshot)
        self._emit(
            ACTION_EXECUTED,
            command_id=command.command_id,
            action=action.to_dict(),
            status=result.get("status"),
            stderr=result.get("stderr", ""),
        )

        if result.get("status") != "ok":
            DEBUG_LOG.add(TAG, f"Action {action} failed: {result.get('stderr', '')}")
            if command.queue:
                self._execute_next(command)
            else:
                self._request(command, PromptKind.CONTINUATION_VALIDATE, action, None)
            return

        delay = self.config.settle_delay_for(action.type)
        command_id = command.command_id
        DEBUG_LOG.debug(TAG, f"Waiting {delay}s for the UI to settle after {action.type}.")
        self.loop.post_delayed(lambda: self._after_settle(command_id), delay)

    def _after_settle(self, command_id: str) -> None:
        command = self.active
        if command is None or command.command_id != command_id:
            DEBUG_LOG.debug(TAG, f"Settle delay elapsed for inactive command {command_id[:8]}; not continuing.")
            return
        next_action = command.queue[0] if command.queue else None
        self._request(command, PromptKind.CONTINUATION_VALIDATE, command.last_action, next_action)

    # Termination

    def _fail(self, command: Command, reason: str) -> None:
        DEBUG_LOG.add(TAG, f"Command '{command.goal}' failed: {reason}")
        command.queue.clear()
        self.state = CommandState.FAILED
        self._close(command, "failed", reason)

    def _close(self, command: Command, status: str, reason: str) -> None:
        snapshot = command.last_snapshot
        result = CommandResult(
            command_id=command.command_id,
            goal=command.goal,
            status=status,
            reason=reason,
            last_action=str(command.last_action) if command.last_action is not None else None,
            planner_calls=command.planner_calls,
            reprompt_attempts=command.reprompt_attempts,
            elements_seen=len(snapshot.interactive()) if snapshot is not None else 0,
        )
        if self.active is command:
            self.active = None
        self.results.append(result)
        self._emit(COMMAND_FINISHED, **asdict(result))
        if self.on_finished is not None:
            self.on_finished(result)
