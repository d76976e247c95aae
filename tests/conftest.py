import io

import pytest
from rich.console import Console

from rt_patcher.display import TerminalRenderer
from rt_patcher.executor import PipelineExecutor
from rt_patcher.models import WizardSession


@pytest.fixture
def terminal(monkeypatch):
    """A fake 80x24 terminal: returns (console, buffer)."""
    monkeypatch.setenv("TERM", "xterm-256color")
    monkeypatch.delenv("NO_COLOR", raising=False)
    buffer = io.StringIO()
    console = Console(
        file=buffer,
        force_terminal=True,
        color_system="standard",
        width=80,
        height=24,
        highlight=False,
    )
    return console, buffer


@pytest.fixture
def session():
    return WizardSession(title="Test Wizard", header=["first header line", "second header line"])


@pytest.fixture
def renderer(session, terminal):
    console, _ = terminal
    return TerminalRenderer(session, console=console, size=(80, 24))


@pytest.fixture
def executor(session, renderer):
    return PipelineExecutor(session, renderer=renderer)
