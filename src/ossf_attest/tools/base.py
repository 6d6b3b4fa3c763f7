import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from ..core.command_gate import CommandGate
from ..core.config import AttestSettings, ToolSpec
from ..core.exceptions import PersistenceError
from ..core.input_validator import safe_write_file
from ..core.types import ExecutionResult

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Everything a tool needs besides its own ToolSpec."""

    settings: AttestSettings
    gate: CommandGate
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)
    home_dir: Optional[Path] = None

    @property
    def home(self) -> Path:
        return self.home_dir if self.home_dir is not None else Path.home()

    @property
    def tool_timeout(self) -> int:
        return self.settings.versions.config.execution.max_tool_timeout


class AnalysisTool:
    """Generic runner for one configured analysis tool.

    Subclasses only override the hooks (``skip_reason``, ``before_run``,
    ``prepare_command``, ``local_version``, ``persist_on_failure``); the
    control flow in ``execute`` is shared by every tool.
    """

    name: str = "unnamed-tool"
    description: str = "No description provided."
    # Write the raw output even when the tool exits non-zero.
    persist_on_failure: bool = True

    def get_version(self, spec: ToolSpec, ctx: RunContext) -> Optional[str]:
        """Self-reported version from the check command, or None."""
        if not spec.check_command:
            return None
        output, err = ctx.gate.execute(
            spec.check_command[0], spec.check_command[1:], timeout=ctx.tool_timeout
        )
        if err is not None:
            logger.debug(f"Could not read {spec.name} version: {err}")
            return None
        return output.strip()

    def local_version(self, spec: ToolSpec, ctx: RunContext) -> Optional[str]:
        """Version the installer compares against ``spec.version``."""
        return self.get_version(spec, ctx)

    def skip_reason(self, spec: ToolSpec, ctx: RunContext) -> Optional[str]:
        return None

    def before_run(self, spec: ToolSpec, ctx: RunContext) -> None:
        pass

    def prepare_command(self, spec: ToolSpec, ctx: RunContext) -> list[str]:
        return list(spec.run_command)

    def execute(self, spec: ToolSpec, ctx: RunContext) -> ExecutionResult:
        """Run the tool and persist its output. Never raises."""
        result = ExecutionResult(tool=spec.name, output_file=spec.output_file)
        start = time.monotonic()

        try:
            reason = self.skip_reason(spec, ctx)
            if reason:
                logger.info(f"Skipping {spec.name}: {reason}")
                result.success = True
                result.output = reason
                result.duration = time.monotonic() - start
                return result

            result.version = self.get_version(spec, ctx) or ""
            self.before_run(spec, ctx)
            command = self.prepare_command(spec, ctx)
            output, err = ctx.gate.execute(command[0], command[1:], timeout=ctx.tool_timeout)
        except Exception as e:
            err_msg = f"Unexpected error running {spec.name}: {e}"
            logger.error(err_msg, exc_info=True)
            result.error = err_msg
            result.duration = time.monotonic() - start
            return result

        result.duration = time.monotonic() - start
        result.output = output
        result.success = err is None
        if err is not None:
            result.error = str(err)
            logger.warning(f"{spec.name} failed: {err}")

        if result.success or self.persist_on_failure:
            try:
                safe_write_file(ctx.settings.output_dir, spec.output_file, output)
            except PersistenceError as e:
                result.persistence_error = f"failed to write output file: {e}"
                logger.error(f"{spec.name}: {result.persistence_error}")
        return result
