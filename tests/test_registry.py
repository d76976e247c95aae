import itertools

import pytest

from rt_patcher.errors import DuplicateNameError, InvalidTransitionError, StepNotFoundError
from rt_patcher.models import StepStatus, WizardSession
from rt_patcher.registry import TRANSITIONS, StepRegistry, can_transition


@pytest.fixture
def registry():
    return StepRegistry(WizardSession(title="t"))


# ---------------------------------------------------------------------------
# Registration and lookup
# ---------------------------------------------------------------------------


def test_register_keeps_order_and_defaults(registry):
    names = ["Fetch", "Verify", "Install"]
    indices = [registry.register(n) for n in names]

    assert indices == [0, 1, 2]
    assert [s.name for s in registry.steps] == names
    assert all(s.status is StepStatus.PLANNED for s in registry.steps)
    assert all(s.comment == "" for s in registry.steps)


def test_register_rejects_duplicate_name(registry):
    registry.register("Fetch")
    with pytest.raises(DuplicateNameError, match="Fetch"):
        registry.register("Fetch")
    assert len(registry) == 1


def test_select_exact_match(registry):
    registry.register("Install Modules")
    registry.register("Install Kernel")
    assert registry.select("Install Kernel") == 1


def test_select_missing_step(registry):
    registry.register("Fetch")
    with pytest.raises(StepNotFoundError, match="fetch"):
        registry.select("fetch")


def test_registry_writes_through_to_session():
    session = WizardSession(title="t")
    StepRegistry(session).register("A")
    assert session.steps[0].name == "A"


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


def test_annotate_sets_then_appends(registry):
    registry.register("Locate Installed Files")
    registry.annotate(0, "/boot/initrd.img-6.8.2-rt11")
    registry.annotate(0, "/boot/vmlinuz-6.8.2-rt11")
    assert registry[0].comment == "/boot/initrd.img-6.8.2-rt11; /boot/vmlinuz-6.8.2-rt11"


def test_annotate_has_no_length_bound(registry):
    registry.register("A")
    registry.annotate(0, "x" * 5000)
    assert len(registry[0].comment) == 5000


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


def test_set_status_is_unchecked(registry):
    registry.register("A")
    registry.set_status(0, StepStatus.FAILED)
    registry.set_status(0, StepStatus.PLANNED)
    assert registry[0].status is StepStatus.PLANNED


@pytest.mark.parametrize("current,target", list(itertools.product(StepStatus, StepStatus)))
def test_transition_table(registry, current, target):
    registry.register("A")
    registry.set_status(0, current)

    allowed = {
        (StepStatus.PLANNED, StepStatus.CURRENT),
        (StepStatus.PLANNED, StepStatus.SKIPPED),
        (StepStatus.CURRENT, StepStatus.COMPLETED),
        (StepStatus.CURRENT, StepStatus.FAILED),
    }
    assert can_transition(current, target) is ((current, target) in allowed)

    if (current, target) in allowed:
        registry.transition(0, target)
        assert registry[0].status is target
    else:
        with pytest.raises(InvalidTransitionError):
            registry.transition(0, target)
        assert registry[0].status is current


def test_terminal_states_are_absorbing():
    for status in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED):
        assert TRANSITIONS[status] == frozenset()


def test_sweep_planned_only_touches_planned(registry):
    for name in "ABCD":
        registry.register(name)
    registry.set_status(0, StepStatus.COMPLETED)
    registry.set_status(2, StepStatus.FAILED)

    swept = registry.sweep_planned()

    assert swept == [1, 3]
    assert [s.status for s in registry.steps] == [
        StepStatus.COMPLETED,
        StepStatus.SKIPPED,
        StepStatus.FAILED,
        StepStatus.SKIPPED,
    ]
