# config.py
# Phase toggles and parameters for the patching wizard.
#
# Values come from RT_PATCHER_* environment variables, optionally seeded by
# a .env file. Unset variables keep the defaults below.

import os
import platform

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "RT_PATCHER_"


def running_kernel_base() -> str:
    """major.minor of the running kernel, e.g. "6.8"."""
    return ".".join(platform.release().split(".")[:2])


class PatcherConfig(BaseModel):
    """Every knob the work units read. Toggles gate whole phases."""

    # Phase toggles
    check_environment: bool = True
    install_dependencies: bool = True
    compile_kernel: bool = True
    install_kernel: bool = True
    add_boot_entry: bool = True

    # Kernel configuration
    create_tiny_kernel_base: bool = Field(default=False, description="tinyconfig instead of localmodconfig.")
    menuconfig: bool = Field(default=False, description="Open make menuconfig after scripting the config.")

    # Sources
    kernel_page: str = "https://cdn.kernel.org/pub/linux/kernel"
    rt_page: str | None = Field(default=None, description="Defaults to <kernel_page>/projects/rt.")
    kernel_base: str | None = Field(default=None, description="Defaults to the running kernel's major.minor.")

    # Paths
    workdir: str | None = Field(default=None, description="Defaults to a fresh temporary directory.")
    log_path: str | None = Field(default=None, description="Defaults to <workdir>/rt-patcher.log.")

    @field_validator("kernel_page", "rt_page")
    @classmethod
    def strip_trailing_slash(cls, value: str | None) -> str | None:
        # URLs are built as f"{page}/..."
        return value.rstrip("/") if value else value

    @property
    def needs_root(self) -> bool:
        return self.install_dependencies or self.install_kernel or self.add_boot_entry

    @property
    def resolved_rt_page(self) -> str:
        return self.rt_page or f"{self.kernel_page}/projects/rt"

    @property
    def resolved_kernel_base(self) -> str:
        return self.kernel_base or running_kernel_base()


def load_config(env_file: str | None = None) -> PatcherConfig:
    """Build a PatcherConfig from RT_PATCHER_* variables. Raises ValidationError."""
    load_dotenv(env_file)

    values = {}
    for name in PatcherConfig.model_fields:
        raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None and raw != "":
            values[name] = raw
    return PatcherConfig.model_validate(values)
