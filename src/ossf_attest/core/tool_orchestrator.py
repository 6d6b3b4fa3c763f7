# src/ossf_attest/core/tool_orchestrator.py
"""Tool orchestration: setup phase, run phase and report aggregation."""

import logging
import os
import threading
from functools import partial
from typing import Mapping, Optional

from ..tools.base import AnalysisTool, RunContext
from ..tools.go_test import GoTestTool
from ..tools.golangci_lint import GolangciLintTool
from ..tools.gosec import GosecTool
from ..tools.govulncheck import GovulncheckTool
from ..tools.semgrep import SemgrepTool
from ..tools.syft import SyftTool
from .command_gate import CommandGate, PathRegistry
from .config import AttestSettings, ToolSpec
from .exceptions import InstallationError, PersistenceError
from .installer import Installer
from .releases import GitHubReleases
from .report import aggregate
from .scheduler import Scheduler, UnitError, WorkUnit
from .types import AttestationReport, ExecutionResult

logger = logging.getLogger(__name__)


class ToolOrchestrator:
    """Installs, runs and reports on every configured tool."""

    # Tool registry
    TOOL_REGISTRY: dict[str, type[AnalysisTool]] = {
        "golangci-lint": GolangciLintTool,
        "gosec": GosecTool,
        "govulncheck": GovulncheckTool,
        "semgrep": SemgrepTool,
        "go-test": GoTestTool,
        "syft": SyftTool,
    }

    def __init__(
        self,
        settings: AttestSettings,
        gate: Optional[CommandGate] = None,
        installer: Optional[Installer] = None,
        scheduler: Optional[Scheduler] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.settings = settings
        self.gate = gate or CommandGate(PathRegistry())
        self.ctx = RunContext(
            settings=settings,
            gate=self.gate,
            environ=os.environ if environ is None else environ,
        )
        self.installer = installer or Installer(self.ctx, releases=GitHubReleases())
        self.scheduler = scheduler or Scheduler(settings.versions.config.execution.max_workers)
        self.tools: dict[str, AnalysisTool] = {
            name: tool_class() for name, tool_class in self.TOOL_REGISTRY.items()
        }
        self._warned: set[str] = set()
        self.run_errors: list[UnitError] = []

    def get_tool(self, tool_name: str) -> Optional[AnalysisTool]:
        return self.tools.get(tool_name)

    def register_tool(self, name: str, tool_class: type[AnalysisTool]) -> None:
        """Register a tool implementation for this orchestrator only."""
        self.tools[name] = tool_class()
        logger.info(f"Registered tool: {name}")

    def get_available_tools(self) -> list[str]:
        return list(self.tools.keys())

    def configured_tools(self) -> list[tuple[ToolSpec, AnalysisTool]]:
        """Configured tools that have an implementation, in document order."""
        pairs = []
        for spec in self.settings.versions.tools:
            tool = self.tools.get(spec.name)
            if tool is None:
                if spec.name not in self._warned:
                    logger.warning(f"No tool implementation registered for {spec.name}; skipping it")
                    self._warned.add(spec.name)
                continue
            pairs.append((spec, tool))
        return pairs

    def prepare_local_tools_dir(self) -> None:
        if not self.settings.features.enable_local_tool_installation:
            return
        local_dir = self.settings.local_tools_dir
        try:
            os.makedirs(local_dir, mode=0o750, exist_ok=True)
        except OSError as e:
            raise InstallationError(f"failed to create local tools directory: {e}") from e
        self.gate.registry.add(local_dir)

    def setup_tools(self) -> list[UnitError]:
        """Install or verify every tool. Returns per-tool errors."""
        units = [
            WorkUnit(spec.name, partial(self.installer.ensure, spec, tool))
            for spec, tool in self.configured_tools()
        ]
        return self.scheduler.run(units, parallel=self.settings.run_parallel)

    def run_all_tools(self) -> tuple[dict[str, ExecutionResult], list[UnitError]]:
        """Run every tool; a failing tool never stops the others."""
        results: dict[str, ExecutionResult] = {}
        lock = threading.Lock()

        def run_one(spec: ToolSpec, tool: AnalysisTool) -> None:
            logger.info(f"Running {spec.name}...")
            result = tool.execute(spec, self.ctx)
            with lock:
                results[spec.name] = result
            if result.persistence_error:
                raise PersistenceError(result.persistence_error)

        units = [
            WorkUnit(spec.name, partial(run_one, spec, tool))
            for spec, tool in self.configured_tools()
        ]
        errors = self.scheduler.run(units, parallel=self.settings.run_parallel)
        return results, errors

    def run(self) -> AttestationReport:
        """Full attestation: setup, then execution, then aggregation.

        Raises InstallationError if any tool could not be set up; no tool is
        run in that case.
        """
        self.prepare_local_tools_dir()

        setup_errors = self.setup_tools()
        if setup_errors:
            raise InstallationError(
                "tool setup failed: " + "; ".join(str(e) for e in setup_errors)
            )

        results, self.run_errors = self.run_all_tools()
        return aggregate(results, self.settings)
