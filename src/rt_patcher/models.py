# models.py
# Data contracts for the RT patching wizard.
# No business logic lives here, pure schema and validation.

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class StepStatus(str, Enum):
    """Display state of a step. Transition rules live in registry.py."""

    PLANNED = "planned"
    CURRENT = "current"
    SKIPPED = "skipped"
    COMPLETED = "completed"
    FAILED = "failed"


class Step(BaseModel):
    """A single named unit of orchestrated work."""

    name: str = Field(..., min_length=1, description="Unique display name, used for lookup.")
    status: StepStatus = Field(default=StepStatus.PLANNED)
    comment: str = Field(default="", description="Appendable annotation shown after the name.")


class WizardSession(BaseModel):
    """Everything the renderer needs to draw one run of the wizard."""

    title: str
    header: list[str] = Field(default_factory=list, description="Static info lines under the title.")
    steps: list[Step] = Field(default_factory=list, description="Registration order is display order.")
    cursor: int | None = Field(default=None, description="Index of the selected step.")


class DownloadArtifact(BaseModel):
    """A file to fetch plus the manifest entry that vouches for it."""

    url: str
    destination: Path
    manifest_url: str
    expected_entry: str = Field(..., description="Filename looked up in the manifest.")
