# steps.py
# Work units of the PREEMPT_RT patcher.
#
# Each public method is one step body: it acts on the outside world and
# either returns or raises. Progress notes go through executor.comment()
# and executor.ok(); everything a tool prints lands in the scroll region.

import logging
import os
import re
import shutil
from collections.abc import Callable, Iterable
from pathlib import Path

import httpx

from rt_patcher.commands import run_cmd
from rt_patcher.config import PatcherConfig
from rt_patcher.errors import EnvironmentCheckError, ReleaseNotFoundError
from rt_patcher.executor import Phase, PipelineExecutor, WorkUnit
from rt_patcher.fetcher import fetch_verified

logger = logging.getLogger(__name__)

TITLE = "PREEMPT_RT Patcher"
HEADER = [
    "downloads, patches, compiles and installs a realtime linux kernel",
    "(compiling may take a while…)",
]
DONE_STEP = "Done"

# Build tools and helpers: xz-utils unpacks the tarball and patch,
# libncurses-dev is needed by menuconfig.
BUILD_DEPENDENCIES = [
    "build-essential", "bc", "python3", "bison", "flex", "rsync", "libssl-dev",
    "wget", "curl", "libelf-dev", "libncurses-dev", "dwarves", "gawk", "ccache",
    "xz-utils",
]

# RT + smaller build + less cert baggage
CONFIG_OPTIONS = [
    ("--enable", "CONFIG_PREEMPT_RT"),
    ("--disable", "CONFIG_DEBUG_INFO"),
    ("--disable", "CONFIG_SYSTEM_REVOCATION_KEYS"),
    ("--disable", "CONFIG_SYSTEM_TRUSTED_KEYS"),
]

BootFiles = tuple[Path, Path]


def version_key(value: str) -> list:
    """Natural sort key, so rt10 sorts after rt9 (like `sort -V`)."""
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", value)]


def _newest(paths: Iterable[Path]) -> Path | None:
    candidates = sorted(paths, key=lambda p: version_key(p.name))
    return candidates[-1] if candidates else None


def _sibling_url(url: str, name: str) -> str:
    return f"{url.rsplit('/', 1)[0]}/{name}"


class KernelPatcher:
    """
    Downloads, patches, builds and installs a realtime kernel.

    State discovered by earlier steps (versions, installed files) is kept
    on the instance for the steps that follow.
    """

    def __init__(
        self,
        config: PatcherConfig,
        executor: PipelineExecutor,
        workdir: Path,
        *,
        client: httpx.Client | None = None,
        boot_dir: Path = Path("/boot"),
    ) -> None:
        self.config = config
        self.executor = executor
        self.workdir = Path(workdir)
        self.boot_dir = boot_dir
        self.client = client or httpx.Client(follow_redirects=True, timeout=None)

        self.kernel_base = config.resolved_kernel_base
        self.kernel_version: str | None = None
        self.patch_version: str | None = None
        self.patch_suffix: str | None = None
        self.vmlinuz: Path | None = None
        self.initrd: Path | None = None

    def close(self) -> None:
        self.client.close()

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def phases(self) -> list[Phase]:
        cfg = self.config
        return [
            Phase("check environment", [WorkUnit("Check Environment", self.check_environment)],
                  enabled=cfg.check_environment),
            Phase("install dependencies", [WorkUnit("Install Dependencies", self.install_dependencies)],
                  enabled=cfg.install_dependencies),
            Phase("prepare sources", [
                WorkUnit("Choose Kernel", self.choose_kernel),
                WorkUnit("Choose Patch", self.choose_patch),
                WorkUnit("Download Kernel", self.download_kernel),
                WorkUnit("Unpack Kernel", self.unpack_kernel),
                WorkUnit("Download Patch", self.download_patch),
                WorkUnit("Unpack Patch", self.unpack_patch),
                WorkUnit("Apply Patch", self.apply_patch),
                WorkUnit("Create Kernel-Config", self.create_kernel_config),
            ]),
            Phase("compile", [WorkUnit("Compile Kernel & Kernel-Modules", self.compile_kernel)],
                  enabled=cfg.compile_kernel),
            Phase("install", [
                WorkUnit("Install Modules", self.install_modules),
                WorkUnit("Install Kernel", self.install_kernel),
            ], enabled=cfg.install_kernel),
            Phase("boot entry", [
                WorkUnit("Locate Installed Files", self.locate_installed_files),
                WorkUnit("Update Bootloader", self.update_bootloader),
            ], enabled=cfg.add_boot_entry),
        ]

    def register_steps(self) -> None:
        for phase in self.phases():
            for unit in phase.units:
                self.executor.registry.register(unit.step)
        self.executor.registry.register(DONE_STEP)

    def farewell(self) -> list[str]:
        lines = ["Script finished!"]
        if self.config.add_boot_entry:
            lines.append("Reboot the system to boot into your new kernel.")
        return lines

    @property
    def source_dir(self) -> Path:
        return self.workdir / f"linux-{self.kernel_version}"

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    def check_environment(self) -> None:
        is_root = os.geteuid() == 0
        if self.config.needs_root and not is_root:
            raise EnvironmentCheckError("This script must be run as root for the selected actions")
        self.executor.ok("Running as root" if is_root else "Running unprivileged (ok for non-install steps)")

        if not os.access(self.workdir, os.W_OK):
            raise EnvironmentCheckError(f"{self.workdir} not writable")
        self.executor.ok(f"{self.workdir} is writable")

        if shutil.which("apt-get"):
            self.executor.ok("apt-get available")
        elif self.config.install_dependencies:
            raise EnvironmentCheckError("Cannot install dependencies: apt-get not found")
        else:
            self.executor.comment("apt-get not found; assuming required tools are preinstalled")
            self.executor.ok("continuing without dependency installation")

    def install_dependencies(self) -> None:
        run_cmd(["apt-get", "update"])
        run_cmd(["apt-get", "install", "-y", *BUILD_DEPENDENCIES])

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def choose_kernel(self) -> None:
        self.executor.comment(self.kernel_base)

    def choose_patch(self) -> None:
        index_url = f"{self.config.resolved_rt_page}/{self.kernel_base}/"
        logger.info("Listing RT patches at %s", index_url)
        response = self.client.get(index_url)
        response.raise_for_status()

        pattern = rf"patch-{re.escape(self.kernel_base)}(?:\.[0-9]+)?-rt[0-9]+\.patch\.xz"
        found = sorted(set(re.findall(pattern, response.text)), key=version_key)
        if not found:
            raise ReleaseNotFoundError(f"no patch found for {self.kernel_base}")

        latest = found[-1]
        self.patch_version = latest[len("patch-"):-len(".patch.xz")]
        self.kernel_version, self.patch_suffix = self.patch_version.split("-", 1)
        logger.info("Selected patch %s (kernel %s)", self.patch_version, self.kernel_version)
        self.executor.comment(self.patch_version)

    def _fetch(self, url: str) -> Path:
        path = fetch_verified(
            url, _sibling_url(url, "sha256sums.asc"), dest_dir=self.workdir, client=self.client
        )
        self.executor.ok(f"{path.name} checksum ok")
        self.executor.comment(url)
        return path

    def download_kernel(self) -> None:
        major = self.kernel_base.split(".")[0]
        self._fetch(f"{self.config.kernel_page}/v{major}.x/linux-{self.kernel_version}.tar.xz")

    def unpack_kernel(self) -> None:
        run_cmd(["tar", "-xf", f"linux-{self.kernel_version}.tar.xz"], cwd=self.workdir)

    def download_patch(self) -> None:
        self._fetch(
            f"{self.config.resolved_rt_page}/{self.kernel_base}/patch-{self.patch_version}.patch.xz"
        )

    def unpack_patch(self) -> None:
        run_cmd(["xz", "-dk", f"patch-{self.patch_version}.patch.xz"], cwd=self.workdir)

    def apply_patch(self) -> None:
        patch_file = self.workdir / f"patch-{self.patch_version}.patch"
        run_cmd(["patch", "-p1", "-i", str(patch_file)], cwd=self.source_dir)

    def create_kernel_config(self) -> None:
        base = "tinyconfig" if self.config.create_tiny_kernel_base else "localmodconfig"
        run_cmd(["make", base], cwd=self.source_dir, answer_defaults=True)
        self.executor.comment(base)

        for flag, option in CONFIG_OPTIONS:
            run_cmd(["scripts/config", flag, option], cwd=self.source_dir)

        if self.config.menuconfig:
            run_cmd(["make", "menuconfig"], cwd=self.source_dir)

    # ------------------------------------------------------------------
    # Build and install
    # ------------------------------------------------------------------

    def compile_kernel(self) -> None:
        jobs = os.cpu_count() or 1
        run_cmd(["make", f"-j{jobs}", f"-l{jobs}"], cwd=self.source_dir, answer_defaults=True)

    def install_modules(self) -> None:
        run_cmd(["make", "modules_install"], cwd=self.source_dir)

    def install_kernel(self) -> None:
        run_cmd(["make", "install"], cwd=self.source_dir)

    # ------------------------------------------------------------------
    # Boot entry
    # ------------------------------------------------------------------

    def _versioned_boot_files(self) -> BootFiles | None:
        vmlinuz = self.boot_dir / f"vmlinuz-{self.kernel_version}"
        initrd = self.boot_dir / f"initrd.img-{self.kernel_version}"
        if vmlinuz.is_file() and initrd.is_file():
            return vmlinuz, initrd
        return None

    def _suffix_boot_files(self) -> BootFiles | None:
        if not self.patch_suffix:
            return None
        vmlinuz = _newest(self.boot_dir.glob(f"vmlinuz-*{self.patch_suffix}*"))
        initrd = _newest(self.boot_dir.glob(f"initrd*.img-*{self.patch_suffix}*"))
        if vmlinuz and initrd:
            return vmlinuz, initrd
        return None

    def boot_file_strategies(self) -> list[Callable[[], BootFiles | None]]:
        """Lookups tried in order; the first hit wins."""
        return [self._versioned_boot_files, self._suffix_boot_files]

    def locate_installed_files(self) -> None:
        for strategy in self.boot_file_strategies():
            found = strategy()
            if found:
                logger.info("Boot files found by %s", strategy.__name__)
                self.vmlinuz, self.initrd = found
                break
        else:
            raise EnvironmentCheckError(
                f"Missing kernel files in {self.boot_dir} (initrd or vmlinuz not found)"
            )
        self.executor.comment(str(self.initrd))
        self.executor.comment(str(self.vmlinuz))

    def bootloader_commands(self) -> list[list[str]]:
        """System tooling in order of preference."""
        return [
            ["update-grub"],
            ["grub-mkconfig", "-o", "/boot/grub/grub.cfg"],
            # preempt=full makes the RT kernel fully preemptible on boot.
            ["kernelstub", "--add-options", "preempt=full",
             "--kernel", str(self.vmlinuz), "--initrd", str(self.initrd)],
        ]

    def update_bootloader(self) -> None:
        for argv in self.bootloader_commands():
            if shutil.which(argv[0]):
                run_cmd(argv)
                break
        else:
            raise EnvironmentCheckError(
                "unsupported boot manager (need update-grub, grub-mkconfig, or kernelstub)"
            )
        self.executor.ok("updated bootloader")
