# registry.py
# Ordered step registry and the step state machine.
#
# The registry stores; it does not judge. set_status() overwrites blindly,
# transition() is the checked path the executor uses.

import logging

from rt_patcher.errors import DuplicateNameError, InvalidTransitionError, StepNotFoundError
from rt_patcher.models import Step, StepStatus, WizardSession

logger = logging.getLogger(__name__)


# Completed, Failed and Skipped are absorbing.
TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PLANNED: frozenset({StepStatus.CURRENT, StepStatus.SKIPPED}),
    StepStatus.CURRENT: frozenset({StepStatus.COMPLETED, StepStatus.FAILED}),
    StepStatus.COMPLETED: frozenset(),
    StepStatus.FAILED: frozenset(),
    StepStatus.SKIPPED: frozenset(),
}


def can_transition(current: StepStatus, target: StepStatus) -> bool:
    return target in TRANSITIONS[current]


class StepRegistry:
    """
    Ordered collection of named steps backed by a WizardSession.

    Steps are appended and never removed or reordered, so a step's index
    is stable for the lifetime of the run.
    """

    def __init__(self, session: WizardSession) -> None:
        self._session = session

    @property
    def steps(self) -> list[Step]:
        return self._session.steps

    def __len__(self) -> int:
        return len(self._session.steps)

    def __getitem__(self, index: int) -> Step:
        return self._session.steps[index]

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def register(self, name: str) -> int:
        """Append a Planned step and return its index."""
        if any(step.name == name for step in self._session.steps):
            raise DuplicateNameError(f"Step {name!r} is already registered.")
        self._session.steps.append(Step(name=name))
        return len(self._session.steps) - 1

    def select(self, name: str) -> int:
        """Exact-match lookup. A miss is a programming error, never recoverable."""
        for index, step in enumerate(self._session.steps):
            if step.name == name:
                return index
        raise StepNotFoundError(f"Step {name!r} not found!")

    def annotate(self, index: int, text: str) -> None:
        step = self._session.steps[index]
        step.comment = text if not step.comment else f"{step.comment}; {text}"

    def set_status(self, index: int, status: StepStatus) -> None:
        self._session.steps[index].status = status

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def transition(self, index: int, status: StepStatus) -> None:
        step = self._session.steps[index]
        if not can_transition(step.status, status):
            raise InvalidTransitionError(
                f"Step {step.name!r} cannot move from {step.status.value} to {status.value}."
            )
        logger.info("Step %r: %s -> %s", step.name, step.status.value, status.value)
        self.set_status(index, status)

    def sweep_planned(self) -> list[int]:
        """Reclassify every step still Planned as Skipped; return their indices."""
        swept = [i for i, step in enumerate(self._session.steps) if step.status is StepStatus.PLANNED]
        for index in swept:
            self.transition(index, StepStatus.SKIPPED)
        return swept
