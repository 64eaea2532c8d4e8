"""
Re-execute a probe in an isolated shadow root.

The shadow root mirrors the repository layout a probe expects:

    <tmp>/root/probes/<probe>.sh     copy of the probe (made executable)
    <tmp>/root/bin/*                 symlinks to the real helpers
    <tmp>/root/bin/emit-record       stand-in that records instead of emitting
    <tmp>/root/catalogs              symlink to the real catalogs (read-only input)
    <tmp>/state/invocations.jsonl    stand-in recordings, private to this run

Every gate run gets its own mkdtemp directory, so runs never share state.
The directory is removed on every exit path, including timeouts and
KeyboardInterrupt.
"""

from __future__ import annotations

import abc
import logging
import os
import shlex
import shutil
import signal
import stat
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from fence.api import env as fence_env
from fence.api import path_utils
from fence.api.catalog import defaults
from fence.api.catalog.repository import CatalogRepository
from fence.api.contract import standin
from fence.api.errors import ProbeTimeoutError, ResourceError

logger = logging.getLogger(__name__)

EMITTER_NAME = "emit-record"
SHADOW_PREFIX = "fence-gate-"
KILL_GRACE_S = 5.0

# Directory that holds the `fence` package; prepended to the stand-in's PYTHONPATH.
PACKAGE_PARENT = Path(__file__).resolve().parents[3]


@dataclass(frozen=True)
class ExecutionResult:
    returncode: int
    stdout: str
    stderr: str
    invocations: Tuple[standin.InvocationRecord, ...]


class SandboxedExecutor(abc.ABC):
    @abc.abstractmethod
    def run(self, probe: Path, env: Optional[Mapping[str, str]], timeout: float) -> ExecutionResult:
        """Run `probe` once and report its exit status, output, and emitter calls."""


def _standin_script(state_dir: Path, catalog_path: Path, python: str) -> str:
    return "\n".join(
        [
            "#!/bin/sh",
            f"{standin.STATE_DIR_ENV}={shlex.quote(str(state_dir))}",
            f"{standin.CATALOG_ENV}={shlex.quote(str(catalog_path))}",
            f"PYTHONPATH={shlex.quote(str(PACKAGE_PARENT))}${{PYTHONPATH:+:$PYTHONPATH}}",
            f"export {standin.STATE_DIR_ENV} {standin.CATALOG_ENV} PYTHONPATH",
            f'exec {shlex.quote(python)} -m fence.api.contract.standin "$@"',
            "",
        ]
    )


def _make_executable(path: Path) -> None:
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _make_tree_writable(base: Path) -> None:
    def _chmod(path: str) -> None:
        try:
            os.chmod(path, stat.S_IRWXU)
        except OSError:
            logger.debug("could not make %s writable", path)

    _chmod(str(base))
    for dirpath, dirnames, _ in os.walk(base):
        for name in dirnames:
            path = os.path.join(dirpath, name)
            # Symlinked helpers point into the real repository; never chmod through them.
            if not os.path.islink(path):
                _chmod(path)


class ShadowRoot:
    """Context manager owning one shadow root; cleanup is idempotent."""

    def __init__(self, probe: Path, repo_root: Path, catalog_path: Path, python: Optional[str] = None):
        self.source_probe = Path(probe)
        self.repo_root = Path(repo_root)
        self.catalog_path = Path(catalog_path)
        self.python = python or sys.executable
        self.base: Optional[Path] = None

    @property
    def root(self) -> Path:
        return self._require_base() / "root"

    @property
    def state_dir(self) -> Path:
        return self._require_base() / "state"

    @property
    def probe(self) -> Path:
        return self.root / "probes" / self.source_probe.name

    def _require_base(self) -> Path:
        if self.base is None:
            raise ResourceError("shadow root has not been created")
        return self.base

    def create(self) -> "ShadowRoot":
        self.base = Path(tempfile.mkdtemp(prefix=SHADOW_PREFIX))
        try:
            self._populate()
        except OSError as exc:
            self.cleanup()
            raise ResourceError(f"failed to build shadow root: {exc}") from exc
        logger.debug("created shadow root %s for %s", self.base, self.source_probe)
        return self

    def _populate(self) -> None:
        bin_dir = self.root / "bin"
        bin_dir.mkdir(parents=True)
        (self.root / "probes").mkdir()
        self.state_dir.mkdir()

        shutil.copy2(self.source_probe, self.probe)
        _make_executable(self.probe)

        real_bin = self.repo_root / "bin"
        if real_bin.is_dir():
            for helper in sorted(real_bin.iterdir()):
                if helper.name == EMITTER_NAME:
                    continue
                (bin_dir / helper.name).symlink_to(helper.resolve())
        if not (bin_dir / ".gitkeep").exists():
            (bin_dir / ".gitkeep").touch()

        emitter = bin_dir / EMITTER_NAME
        emitter.write_text(_standin_script(self.state_dir, self.catalog_path, self.python))
        _make_executable(emitter)

        real_catalogs = self.repo_root / "catalogs"
        if real_catalogs.is_dir():
            (self.root / "catalogs").symlink_to(real_catalogs.resolve(), target_is_directory=True)

    def cleanup(self) -> None:
        """
        Remove the shadow root. Safe to call more than once.

        Probes may leave read-only directories behind; on a first failure every
        real directory in the tree is made owner-writable and removal is
        retried. Whatever still fails is raised as ResourceError.
        """

        if self.base is None or not self.base.exists():
            return
        try:
            shutil.rmtree(self.base)
        except OSError:
            _make_tree_writable(self.base)
            try:
                shutil.rmtree(self.base)
            except OSError as exc:
                raise ResourceError(f"failed to remove shadow root {self.base}: {exc}") from exc
        logger.debug("removed shadow root %s", self.base)

    def __enter__(self) -> "ShadowRoot":
        return self.create()

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.cleanup()
        except ResourceError:
            # A timeout or interrupt already in flight is the more useful error.
            if exc_type is None:
                raise
            logger.warning("shadow root %s left behind after %s", self.base, exc_type.__name__)


def _kill_tree(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    try:
        proc.communicate(timeout=KILL_GRACE_S)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


class ShadowRootExecutor(SandboxedExecutor):
    """
    Runs probes through the mode-runner inside a fresh shadow root.

    The run mode is taken from FENCE_RUN_MODE in the `env` passed to `run`.
    `last_root` names the most recent shadow root so callers can confirm it
    is gone afterwards.
    """

    def __init__(
        self,
        repo_root: Optional[Path] = None,
        catalog_path: Optional[Path] = None,
        python: Optional[str] = None,
        catalogs: Optional[CatalogRepository] = None,
    ):
        self.repo_root = repo_root or path_utils.find_repo_root(Path(__file__))
        self.catalog_path = self._catalog_path(catalog_path, catalogs)
        self.python = python or sys.executable
        self.last_root: Optional[Path] = None

    def _catalog_path(self, explicit: Optional[Path], catalogs: Optional[CatalogRepository]) -> Path:
        # The stand-in runs in another process, so it is handed the file behind the active index.
        if explicit:
            return Path(explicit)
        if catalogs is not None:
            source = catalogs.active.source
            if not source:
                raise ResourceError(f"catalog {catalogs.active.key} was not loaded from a file")
            return Path(source)
        return defaults.resolve_catalog_path(repo_root=self.repo_root)

    def _child_env(self, shadow: ShadowRoot, overrides: Mapping[str, str]) -> dict:
        child_env = dict(os.environ)
        child_env.update(overrides)
        existing = child_env.get("PYTHONPATH")
        child_env["PYTHONPATH"] = f"{PACKAGE_PARENT}{os.pathsep}{existing}" if existing else str(PACKAGE_PARENT)
        child_env[fence_env.WORKSPACE_ROOT] = str(shadow.root)
        return child_env

    def run(self, probe: Path, env: Optional[Mapping[str, str]] = None, timeout: float = fence_env.DEFAULT_GATE_TIMEOUT_S) -> ExecutionResult:
        overrides = dict(env or {})
        mode = overrides.get(fence_env.RUN_MODE) or "baseline"
        with ShadowRoot(probe, self.repo_root, self.catalog_path, python=self.python) as shadow:
            self.last_root = shadow.base
            cmd = [
                self.python,
                "-m",
                "fence.api.runner.fence_run",
                "--workspace-root",
                str(shadow.root),
                mode,
                str(shadow.probe),
            ]
            proc = subprocess.Popen(
                cmd,
                cwd=shadow.root,
                env=self._child_env(shadow, overrides),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
            try:
                stdout, stderr = proc.communicate(timeout=timeout)
            except subprocess.TimeoutExpired:
                _kill_tree(proc)
                logger.warning("%s exceeded %ss; killed process group %s", probe, timeout, proc.pid)
                raise ProbeTimeoutError(Path(probe).name, timeout) from None
            except BaseException:
                _kill_tree(proc)
                raise
            invocations = tuple(standin.read_invocations(shadow.state_dir))
        return ExecutionResult(returncode=proc.returncode, stdout=stdout, stderr=stderr, invocations=invocations)
