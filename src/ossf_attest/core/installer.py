# src/ossf_attest/core/installer.py
"""Idempotent tool installation with verification and retry.

For each tool: look for an existing installation, decide whether it is
acceptable, otherwise run the install strategy selected by the tool's
``install_method`` and verify the result, retrying with a linear backoff.
"""

import logging
import os
import tempfile
import threading
import time
from typing import TYPE_CHECKING, Callable, Optional

from .config import ToolSpec
from .exceptions import InstallationError, SecurityError
from .input_validator import InputValidator
from .releases import GitHubReleases

if TYPE_CHECKING:
    from ..tools.base import AnalysisTool, RunContext

logger = logging.getLogger(__name__)

KNOWN_SYSTEM_DIRS = (
    "/usr/local/bin",
    "/usr/bin",
    "/bin",
    "/opt/homebrew/bin",  # Homebrew on Apple Silicon
    "/usr/local/homebrew/bin",  # Homebrew on Intel Mac
    "/opt/local/bin",  # MacPorts
)


def compare_versions(local_version: str, expected_version: str) -> bool:
    """Return True if ``local_version`` is compatible with ``expected_version``.

    Both sides lose a leading ``v``; the local string is accepted if it
    contains the expected one. This is loose ("v1.2.30" matches "1.2.3",
    and an empty expected version matches anything) and is kept as the
    current acceptance policy.
    """
    local = local_version.strip().removeprefix("v")
    expected = expected_version.strip().removeprefix("v")
    return expected in local or local == expected


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


class Installer:
    """Ensures configured tools are present, installing them when needed."""

    def __init__(
        self,
        ctx: "RunContext",
        releases: Optional[GitHubReleases] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ctx = ctx
        self.settings = ctx.settings
        self.gate = ctx.gate
        self.releases = releases
        self._sleep = sleep
        self._go_bin_lock = threading.Lock()
        self._go_bin_dir: Optional[str] = None
        self._go_bin_checked = False
        self.strategies: dict[str, Callable[[ToolSpec], None]] = {
            "script": self._install_script,
            "go_install": self._install_go_module,
            "pip": self._install_python_package,
        }

    @property
    def prefs(self):
        return self.settings.versions.config.install_preferences

    # --- Locations -------------------------------------------------------

    def go_bin_dir(self) -> Optional[str]:
        """``$(go env GOPATH)/bin``, looked up once."""
        with self._go_bin_lock:
            if self._go_bin_checked:
                return self._go_bin_dir

        # The subprocess runs outside the lock; a duplicate lookup is harmless.
        output, err = self.gate.execute("go", ["env", "GOPATH"], timeout=30)
        go_bin = None
        if err is None and output.strip():
            go_path = output.strip().split(os.pathsep)[0]
            go_bin = os.path.join(go_path, "bin")

        with self._go_bin_lock:
            self._go_bin_dir = go_bin
            self._go_bin_checked = True
        return go_bin

    def user_bin_dir(self) -> str:
        return str(self.ctx.home / ".local" / "bin")

    def _register(self, directory: str) -> None:
        if self.settings.features.enable_automatic_path_management:
            self.gate.registry.add(directory)

    def _find_in(self, executable: str, directories) -> Optional[str]:
        """Find ``executable`` in ``directories`` and make it resolvable.

        The gate only resolves through the registry, so a hit that cannot be
        registered is not a usable hit.
        """
        for directory in directories:
            if not directory:
                continue
            candidate = os.path.join(directory, executable)
            if not _is_executable(candidate):
                continue
            if not self.settings.features.enable_automatic_path_management:
                logger.warning(
                    f"Found {candidate} outside the search path, but automatic path "
                    "management is disabled; ignoring it"
                )
                return None
            self._register(directory)
            return candidate
        return None

    def locate(self, executable: str) -> Optional[str]:
        """Find ``executable`` on the search locations or in well-known dirs."""
        path = self.gate.resolve(executable)
        if path:
            return path
        return self._find_in(executable, (self.go_bin_dir(), *KNOWN_SYSTEM_DIRS))

    def verify(self, executable: str) -> Optional[str]:
        """Confirm a freshly installed executable can be resolved."""
        path = self.gate.resolve(executable)
        if path:
            return path
        return self._find_in(
            executable,
            (self.go_bin_dir(), os.path.abspath(self.settings.local_tools_dir), self.user_bin_dir()),
        )

    # --- Decision --------------------------------------------------------

    def should_use_local(self, spec: ToolSpec, local_version: str) -> bool:
        if self.prefs.prefer_local:
            logger.debug(f"prefer_local=true for {spec.name}, using local version")
            return True
        if not self.settings.features.enable_version_checking:
            return True
        return compare_versions(local_version, spec.version)

    def ensure(self, spec: ToolSpec, tool: "AnalysisTool") -> str:
        """Make ``spec``'s executable available and return its path."""
        path = self.locate(spec.executable)
        if path:
            local_version = tool.local_version(spec, self.ctx)
            if local_version is not None:
                if self.should_use_local(spec, local_version):
                    logger.info(f"Using local {spec.name} (version: {local_version})")
                    return path
                logger.info(
                    f"Local {spec.name} version {local_version} differs from configured "
                    f"{spec.version}, installing configured version"
                )
            else:
                logger.debug(f"Failed to get local {spec.name} version")

        if spec.install_method == "built-in":
            if path:
                return path
            raise InstallationError(
                f"built-in tool {spec.name} requires '{spec.executable}', which was not found"
            )

        if spec.install_method == "pip" and not self.settings.features.enable_pip_fallback_methods:
            raise InstallationError(f"pip installation methods are disabled for {spec.name}")

        self._note_latest_release(spec)
        strategy = self.strategies[spec.install_method]
        return self.atomic_install(spec, lambda: strategy(spec))

    def _note_latest_release(self, spec: ToolSpec) -> None:
        if not (self.settings.verbose and spec.github_repo and self.releases):
            return
        if not self.settings.features.enable_version_checking:
            return
        latest = self.releases.latest_tag(spec.github_repo)
        if latest and latest != spec.version:
            logger.info(f"Note: {spec.name} latest version is {latest} (configured: {spec.version})")

    # --- Install + verify + retry -----------------------------------------

    def atomic_install(self, spec: ToolSpec, install_func: Callable[[], None]) -> str:
        """Run ``install_func`` until the tool verifies or retries run out.

        Policy violations (SecurityError) are raised immediately.
        """
        retry_count = max(0, int(self.prefs.install_retry_count))
        last_error: Optional[Exception] = None

        for attempt in range(retry_count + 1):
            if attempt > 0:
                logger.info(
                    f"Retrying installation of {spec.name} (attempt {attempt + 1}/{retry_count + 1})..."
                )
                self._sleep(attempt * self.prefs.install_backoff_seconds)

            try:
                install_func()
            except SecurityError:
                raise
            except InstallationError as e:
                logger.warning(f"Installation attempt for {spec.name} failed: {e}")
                last_error = e
                continue

            path = self.verify(spec.executable)
            if path:
                logger.info(f"Installed {spec.name} at {path}")
                return path
            last_error = InstallationError(
                "installation appeared to succeed but tool not found in PATH or Go bin"
            )

        raise InstallationError(
            f"failed to install {spec.name} after {retry_count + 1} attempts: {last_error}"
        ) from last_error

    def _run(self, name: str, args: list[str]) -> str:
        output, err = self.gate.execute(name, args, timeout=self.prefs.install_timeout)
        if isinstance(err, SecurityError):
            raise err
        if err is not None:
            raise InstallationError(
                f"installation command failed: {err}\nOutput: {output.strip()[-2000:]}"
            )
        return output

    # --- Strategies ----------------------------------------------------

    def _install_script(self, spec: ToolSpec) -> None:
        local_dir = self.settings.local_tools_dir
        InputValidator.validate_installation_params(spec.install_url, local_dir, spec.version)
        logger.info(f"Installing {spec.name} {spec.version} to {local_dir}...")

        os.makedirs(local_dir, mode=0o750, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=f"{spec.name}-install") as tmp_dir:
            script_path = os.path.join(tmp_dir, "install.sh")
            self._run("curl", ["-sSfL", "-o", script_path, spec.install_url])
            try:
                os.chmod(script_path, 0o750)
            except OSError as e:
                raise InstallationError(f"downloaded install script is unusable: {e}") from e
            self._run("sh", [script_path, "-b", local_dir, spec.version])
        self._register(local_dir)

    def _install_go_module(self, spec: ToolSpec) -> None:
        package = InputValidator.validate_go_install_package(spec.install_package)
        version = InputValidator.validate_version_string(spec.version)
        logger.info(f"Installing {spec.name} {version}...")
        self._run("go", ["install", f"{package}@{version}"])
        go_bin = self.go_bin_dir()
        if go_bin:
            self._register(go_bin)

    def _install_python_package(self, spec: ToolSpec) -> None:
        version = InputValidator.validate_version_string(spec.version)
        package = InputValidator.validate_package_name(spec.install_package or spec.name)
        requirement = f"{package}=={version}"
        logger.info(f"Installing {spec.name} {version}...")

        # Isolated installer first, then user-scoped pip variants.
        attempts = (
            ("pipx", ["install", "--force", requirement]),
            ("pip3", ["install", "--user", "--force-reinstall", requirement]),
            ("pip", ["install", "--user", "--force-reinstall", requirement]),
        )
        last_error: Optional[InstallationError] = None
        for installer, args in attempts:
            if not self.gate.resolve(installer):
                continue
            try:
                self._run(installer, args)
            except InstallationError as e:
                logger.debug(f"{installer} could not install {requirement}: {e}")
                last_error = e
                continue
            self._register(self.user_bin_dir())
            return

        if last_error is not None:
            raise InstallationError(f"no package installer could install {requirement}: {last_error}")
        raise InstallationError(f"pipx, pip3, or pip is required to install {spec.name}")
