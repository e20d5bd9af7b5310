"""Job status state machine using the transitions library.

Jobs and grading jobs share one lifecycle:

    new -> running -> completed | failed

A completed or failed job goes back to `new` when it is re-run or a new
version is created. A job stuck in `running` (the process died mid-run)
can also be reset.

Usage:
    from ian.workflow.fsm import JobFSM

    fsm = JobFSM(job)
    fsm.start()
    fsm.complete()   # job.status == "completed"
"""

import logging
from typing import Callable

from transitions import Machine, MachineError

from ian.lib.constants import JOB_STATUSES, STATUS_NEW

logger = logging.getLogger(__name__)


STATES = list(JOB_STATUSES)

# Each trigger becomes a method on the FSM
TRANSITIONS = [
    {"trigger": "start", "source": "new", "dest": "running"},
    {"trigger": "complete", "source": "running", "dest": "completed"},
    {"trigger": "fail", "source": "running", "dest": "failed"},

    # Re-run: outputs are cleared by the caller
    {"trigger": "reset", "source": "completed", "dest": "new"},
    {"trigger": "reset", "source": "failed", "dest": "new"},
    {"trigger": "reset", "source": "running", "dest": "new"},  # stale run

    # New version of an idle job
    {"trigger": "new_version", "source": "new", "dest": "new"},
    {"trigger": "new_version", "source": "completed", "dest": "new"},
    {"trigger": "new_version", "source": "failed", "dest": "new"},
]


class InvalidTransition(Exception):
    """Raised when attempting an invalid status change."""

    def __init__(self, from_state: str, trigger: str, job_id: str = ""):
        self.from_state = from_state
        self.trigger = trigger
        self.job_id = job_id
        super().__init__(
            f"Invalid transition: cannot {trigger} from {from_state}"
            + (f" (job: {job_id})" if job_id else "")
        )


class JobFSM:
    """State machine for a job's status field.

    Wraps the transitions library:
    - Initial state comes from job.status
    - Every transition writes job.status back and is logged
    """

    def __init__(self, job, on_transition: Callable[[str, str, str], None] | None = None):
        """Initialize FSM for a Job or GradingJob.

        Args:
            job: Any object with `id` and `status` attributes
            on_transition: Optional callback(from_state, to_state, trigger)
        """
        self.job = job
        self.on_transition = on_transition

        initial = job.status
        if initial not in STATES:
            logger.warning(f"[FSM] {job.id}: Unknown status '{initial}', defaulting to '{STATUS_NEW}'")
            initial = STATUS_NEW
            job.status = initial

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        """Callback after any state transition."""
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        self.job.status = to_state
        logger.info(f"[FSM] {self.job.id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def fire(self, trigger: str) -> None:
        """Run a trigger by name.

        Raises:
            InvalidTransition: If the trigger isn't allowed in the current state
        """
        current = self.state
        if not self.can(trigger):
            raise InvalidTransition(current, trigger, self.job.id)
        try:
            getattr(self, trigger)()
        except MachineError as e:
            raise InvalidTransition(current, trigger, self.job.id) from e

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        """Get list of triggers available in current state."""
        return self.machine.get_triggers(self.state)
