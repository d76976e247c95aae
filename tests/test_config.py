import os

import pytest
from pydantic import ValidationError

from rt_patcher.config import PatcherConfig, load_config


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in PatcherConfig.model_fields:
        monkeypatch.delenv(f"RT_PATCHER_{name.upper()}", raising=False)
    return tmp_path / "missing.env"


def test_defaults(clean_env):
    config = load_config(clean_env)
    assert config.check_environment and config.install_dependencies
    assert config.compile_kernel and config.install_kernel and config.add_boot_entry
    assert not config.create_tiny_kernel_base and not config.menuconfig
    assert config.resolved_rt_page == "https://cdn.kernel.org/pub/linux/kernel/projects/rt"


def test_toggles_from_environment(clean_env, monkeypatch):
    monkeypatch.setenv("RT_PATCHER_COMPILE_KERNEL", "false")
    monkeypatch.setenv("RT_PATCHER_ADD_BOOT_ENTRY", "0")
    monkeypatch.setenv("RT_PATCHER_KERNEL_BASE", "6.6")
    monkeypatch.setenv("RT_PATCHER_MENUCONFIG", "")

    config = load_config(clean_env)

    assert config.compile_kernel is False
    assert config.add_boot_entry is False
    assert config.menuconfig is False
    assert config.resolved_kernel_base == "6.6"


def test_values_from_dotenv_file(clean_env, monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("RT_PATCHER_INSTALL_DEPENDENCIES=no\nRT_PATCHER_WORKDIR=/srv/rt\n")
    monkeypatch.setattr(os, "environ", dict(os.environ))

    config = load_config(env_file)

    assert config.install_dependencies is False
    assert config.workdir == "/srv/rt"


def test_invalid_toggle_rejected(clean_env, monkeypatch):
    monkeypatch.setenv("RT_PATCHER_INSTALL_KERNEL", "maybe")
    with pytest.raises(ValidationError):
        load_config(clean_env)


def test_pages_lose_trailing_slash(clean_env, monkeypatch):
    monkeypatch.setenv("RT_PATCHER_KERNEL_PAGE", "https://mirror.example.org/linux/kernel/")
    monkeypatch.setenv("RT_PATCHER_RT_PAGE", "https://rt.example.org/rt//")

    config = load_config(clean_env)

    assert config.kernel_page == "https://mirror.example.org/linux/kernel"
    assert config.resolved_rt_page == "https://rt.example.org/rt"
    assert PatcherConfig(kernel_page="https://k.example.org/").resolved_rt_page == "https://k.example.org/projects/rt"


def test_needs_root():
    assert PatcherConfig().needs_root
    assert not PatcherConfig(install_dependencies=False, install_kernel=False, add_boot_entry=False).needs_root
    assert PatcherConfig(install_dependencies=False, install_kernel=False).needs_root


def test_kernel_base_from_running_kernel(monkeypatch):
    monkeypatch.setattr("platform.release", lambda: "6.8.0-45-generic")
    assert PatcherConfig().resolved_kernel_base == "6.8"


def test_rt_page_override():
    assert PatcherConfig(kernel_page="https://mirror/k/").resolved_rt_page == "https://mirror/k/projects/rt"
    assert PatcherConfig(rt_page="https://rt").resolved_rt_page == "https://rt"
