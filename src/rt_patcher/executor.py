# executor.py
# Pipeline executor.
#
# The executor is the only writer of the session while a run is in
# progress. It owns step selection, status transitions and the abort
# policy; the renderer only reads what it is given.
#
# Control flow:
#   full redraw → per enabled phase: per unit: advance → work()
#   → on error: mark Failed → redraw → fatal message → exit 1 (130 on Ctrl-C,
#     143 on SIGTERM)
#   → on success: optional finish step → Planned→Skipped sweep → exit 0
#
# The terminal is restored on every exit path by the renderer's context
# manager.

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from rt_patcher.display import TerminalRenderer
from rt_patcher.errors import Terminated
from rt_patcher.models import StepStatus, WizardSession
from rt_patcher.registry import StepRegistry

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130

Work = Callable[[], object]


@dataclass(frozen=True)
class WorkUnit:
    """Binds a registered step name to the callable doing its work."""

    step: str
    work: Work


@dataclass(frozen=True)
class Phase:
    """One or more work units behind a single enable toggle."""

    name: str
    units: Sequence[WorkUnit]
    enabled: bool = True


@dataclass(frozen=True)
class RunResult:
    exit_code: int
    completed: list[str] = field(default_factory=list)
    failed: str | None = None


class PipelineExecutor:
    """
    Drives a WizardSession through an ordered list of phases.

    Example:
        session = WizardSession(title="Demo")
        executor = PipelineExecutor(session)
        executor.registry.register("Fetch")
        code = executor.run([Phase("fetch", [WorkUnit("Fetch", fetch)])]).exit_code
    """

    def __init__(
        self,
        session: WizardSession,
        renderer: TerminalRenderer | None = None,
    ) -> None:
        self.session = session
        self.registry = StepRegistry(session)
        self.renderer = renderer or TerminalRenderer(session)

    # ------------------------------------------------------------------
    # Step control, also used by work units
    # ------------------------------------------------------------------

    @property
    def current(self) -> int | None:
        cursor = self.session.cursor
        if cursor is not None and self.registry[cursor].status is StepStatus.CURRENT:
            return cursor
        return None

    def advance(self, name: str) -> int:
        """Complete the outgoing step (if still current) and make `name` current."""
        # Look up first: an unknown name fails the outgoing step.
        index = self.registry.select(name)

        outgoing = self.current
        if outgoing is not None:
            self.registry.transition(outgoing, StepStatus.COMPLETED)
            self.renderer.redraw_step(outgoing)

        self.session.cursor = index
        self.registry.transition(index, StepStatus.CURRENT)
        self.renderer.redraw_step(index)
        self.renderer.begin_step_output(index)
        return index

    def skip(self, name: str) -> None:
        index = self.registry.select(name)
        self.registry.transition(index, StepStatus.SKIPPED)
        self.renderer.redraw_step(index)

    def comment(self, text: str) -> None:
        """Annotate the current step and show it right away."""
        index = self.session.cursor
        if index is None:
            logger.warning("Comment %r dropped: no step selected", text)
            return
        self.registry.annotate(index, text)
        self.renderer.redraw_step(index)

    def ok(self, text: str) -> None:
        logger.info("OK %s", text)
        self.renderer.ok(text)

    # ------------------------------------------------------------------
    # Failure
    # ------------------------------------------------------------------

    def _fail(self, message: str) -> str | None:
        index = self.current
        failed = None
        if index is not None:
            if message:
                self.registry.annotate(index, message.splitlines()[0])
            self.registry.transition(index, StepStatus.FAILED)
            self.renderer.redraw_step(index)
            failed = self.registry[index].name
        self.renderer.fatal(message)
        return failed

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def _finish(self, finish_step: str | None, farewell: Sequence[str]) -> None:
        if finish_step is not None:
            index = self.advance(finish_step)
            self.registry.transition(index, StepStatus.COMPLETED)
        else:
            outgoing = self.current
            if outgoing is not None:
                self.registry.transition(outgoing, StepStatus.COMPLETED)

        skipped = self.registry.sweep_planned()
        logger.info("Run finished; %d step(s) skipped", len(skipped))
        self.renderer.farewell(list(farewell))
        self.renderer.redraw_steps()

    def _completed(self) -> list[str]:
        return [s.name for s in self.registry.steps if s.status is StepStatus.COMPLETED]

    def run(
        self,
        phases: Sequence[Phase],
        *,
        finish_step: str | None = None,
        farewell: Sequence[str] = (),
    ) -> RunResult:
        """
        Execute every enabled phase in order; the first error ends the run.

        Disabled phases are never selected. Their steps stay Planned until
        the final sweep turns them into Skipped.
        """
        with self.renderer:
            self.renderer.full_redraw()
            try:
                for phase in phases:
                    if not phase.enabled:
                        logger.info("Phase %r disabled", phase.name)
                        continue
                    for unit in phase.units:
                        self.advance(unit.step)
                        logger.info("Running step %r", unit.step)
                        unit.work()
                self._finish(finish_step, farewell)
            except KeyboardInterrupt:
                logger.error("Interrupted")
                failed = self._fail("Interrupted")
                return RunResult(EXIT_INTERRUPTED, self._completed(), failed)
            except Terminated as exc:
                logger.error("Terminated by signal")
                failed = self._fail("Terminated")
                return RunResult(exc.code, self._completed(), failed)
            except SystemExit as exc:
                logger.error("Exit requested by step (%s)", exc.code)
                self._fail(f"Exited ({exc.code})")
                raise
            except Exception as exc:
                logger.exception("Step failed")
                failed = self._fail(str(exc) or type(exc).__name__)
                return RunResult(EXIT_FAILED, self._completed(), failed)

        return RunResult(EXIT_OK, self._completed())
