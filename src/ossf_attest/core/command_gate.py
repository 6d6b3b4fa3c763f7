# src/ossf_attest/core/command_gate.py
"""Allow-listed subprocess execution.

Every external process ossf-attest starts goes through ``run_command`` (or a
``CommandGate`` bound to a ``PathRegistry``). Commands are looked up by base
name in a closed registry; the argv is built from the registry entry, never
from the caller's string, and every argument is sanitised first.
"""

import logging
import os
import shutil
import subprocess
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .exceptions import AttestError, CommandFailedError, SecurityError
from .input_validator import InputValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Invocation:
    executable: str
    description: str


ALLOWED_COMMANDS: dict[str, Invocation] = {
    "go": Invocation("go", "Go toolchain"),
    "golangci-lint": Invocation("golangci-lint", "linter aggregator"),
    "gosec": Invocation("gosec", "security scanner"),
    "govulncheck": Invocation("govulncheck", "vulnerability checker"),
    "semgrep": Invocation("semgrep", "static analysis engine"),
    "syft": Invocation("syft", "SBOM generator"),
    "git": Invocation("git", "version control"),
    "curl": Invocation("curl", "downloader"),
    "sh": Invocation("sh", "POSIX shell"),
    "bash": Invocation("bash", "bash shell"),
    "pip": Invocation("pip", "package installer"),
    "pip3": Invocation("pip3", "package installer"),
    "pipx": Invocation("pipx", "isolated package installer"),
    "make": Invocation("make", "build tool"),
}


# Flags whose following argument is a credential.
SECRET_FLAGS = ("--token",)


def redact_command(command: Sequence[str]) -> str:
    """Render an argv for logging with credential values masked."""
    parts = list(command)
    for i, arg in enumerate(parts[:-1]):
        if arg in SECRET_FLAGS:
            parts[i + 1] = "***"
    return " ".join(parts)


def is_whitelisted_command(name: str) -> bool:
    return os.path.basename(name) in ALLOWED_COMMANDS


@dataclass(frozen=True)
class ExecutableLocations:
    """Extra directories searched, before ``PATH``, when resolving executables."""

    extra_dirs: tuple[str, ...] = ()

    def search_path(self) -> str:
        parts = [*self.extra_dirs, os.environ.get("PATH", "")]
        return os.pathsep.join(p for p in parts if p)

    def resolve(self, name: str) -> Optional[str]:
        return shutil.which(name, path=self.search_path())

    def with_dirs(self, *dirs: str) -> "ExecutableLocations":
        merged = list(self.extra_dirs)
        for d in dirs:
            if d and d not in merged:
                merged.append(d)
        return ExecutableLocations(tuple(merged))


class PathRegistry:
    """Append-only, thread-safe record of discovered install directories."""

    def __init__(self, initial: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._locations = ExecutableLocations().with_dirs(
            *(os.path.abspath(d) for d in initial)
        )

    def add(self, directory: str) -> bool:
        """Register ``directory``; returns False if it was already known."""
        directory = os.path.abspath(directory)
        with self._lock:
            if directory in self._locations.extra_dirs:
                return False
            self._locations = self._locations.with_dirs(directory)
        logger.debug(f"Added {directory} to executable search locations")
        return True

    def snapshot(self) -> ExecutableLocations:
        with self._lock:
            return self._locations

    def __contains__(self, directory: str) -> bool:
        return os.path.abspath(directory) in self.snapshot().extra_dirs


def build_secure_command(
    name: str, args: Sequence[str], locations: Optional[ExecutableLocations] = None
) -> list[str]:
    """Build an argv from the registry entry for ``name``'s base name."""
    invocation = ALLOWED_COMMANDS.get(os.path.basename(name))
    if invocation is None:
        raise SecurityError(f"command not in whitelist: {os.path.basename(name)}")

    executable = invocation.executable
    if locations is not None:
        executable = locations.resolve(invocation.executable) or invocation.executable
    return [executable, *args]


def run_command(
    name: str,
    args: Sequence[str] = (),
    locations: Optional[ExecutableLocations] = None,
    timeout: Optional[float] = None,
) -> tuple[str, Optional[AttestError]]:
    """Run an allow-listed command and capture combined stdout/stderr.

    Returns ``(output, error)``. ``error`` is a ``SecurityError`` for policy
    violations (nothing was spawned) or a ``CommandFailedError`` when the
    process could not start, timed out or exited non-zero. Output is
    returned whatever the exit status.
    """
    executable_name = os.path.basename(name)
    if not is_whitelisted_command(name):
        err = SecurityError(f"command not in whitelist: {executable_name}")
        logger.error(str(err))
        return "", err

    for arg in args:
        try:
            InputValidator.validate_command_arg(arg)
        except SecurityError as e:
            err = SecurityError(f"invalid command argument for {executable_name}: {e}")
            logger.error(str(err))
            return "", err

    command = build_secure_command(name, args, locations)
    logger.debug(f"Executing command: {redact_command(command)}")
    try:
        result = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
            timeout=timeout,
        )
    except FileNotFoundError:
        msg = (
            f"Command not found: '{command[0]}'. Ensure '{executable_name}' is "
            "installed and in PATH."
        )
        logger.warning(msg)
        return "", CommandFailedError(msg)
    except subprocess.TimeoutExpired as e:
        output = e.output or ""
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        msg = f"Command timed out after {timeout}s: {executable_name}"
        logger.warning(msg)
        return output, CommandFailedError(msg)
    except OSError as e:
        msg = f"Error running command {executable_name}: {e}"
        logger.error(msg)
        return "", CommandFailedError(msg)

    output = result.stdout or ""
    if result.returncode != 0:
        logger.debug(f"Command '{executable_name}' failed. Return Code: {result.returncode}")
        return output, CommandFailedError(
            f"{executable_name} exited with status {result.returncode}", result.returncode
        )
    return output, None


class CommandGate:
    """``run_command`` bound to a shared ``PathRegistry`` and default timeout."""

    def __init__(self, registry: Optional[PathRegistry] = None, timeout: Optional[float] = None):
        self.registry = registry or PathRegistry()
        self.timeout = timeout

    def execute(
        self, name: str, args: Sequence[str] = (), timeout: Optional[float] = None
    ) -> tuple[str, Optional[AttestError]]:
        return run_command(
            name,
            list(args),
            locations=self.registry.snapshot(),
            timeout=timeout if timeout is not None else self.timeout,
        )

    def resolve(self, name: str) -> Optional[str]:
        return self.registry.snapshot().resolve(name)
