from __future__ import annotations

from statemachine import State, StateMachine

from tapworks.api.models import ObjectiveProgress, ProgressStatus


class ObjectiveFSM(StateMachine):
    """FSM wrapper around one task or achievement tier.

    active -> completed -> claimed; there is no way back. Progress numbers and
    timestamps live on the model, the FSM only guards transitions.
    """

    active = State(ProgressStatus.active.value, value=ProgressStatus.active.value, initial=True)
    completed = State(ProgressStatus.completed.value, value=ProgressStatus.completed.value)
    claimed = State(ProgressStatus.claimed.value, value=ProgressStatus.claimed.value, final=True)

    complete = active.to(completed)
    claim = completed.to(claimed)

    def __init__(self, progress: ObjectiveProgress):
        self.progress = progress
        super().__init__(start_value=progress.status.value)

    def sync_status_to_model(self) -> None:
        self.progress.status = ProgressStatus(str(self.current_state_value))
