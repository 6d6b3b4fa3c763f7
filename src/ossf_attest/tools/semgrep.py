import logging
from typing import Optional

from ..core.config import ToolSpec
from .base import AnalysisTool, RunContext

logger = logging.getLogger(__name__)

CONFIG_FLAG = "--config"


class SemgrepTool(AnalysisTool):
    """Semgrep static analysis.

    Logs in with a token from the environment when no stored credentials
    exist, and swaps in the fallback rule set when the configured one cannot
    be loaded.
    """

    name = "semgrep"
    description = "Static analysis security scanner"

    def _has_stored_token(self, ctx: RunContext) -> bool:
        settings_path = ctx.home / ".semgrep" / "settings.yml"
        try:
            return "api_token" in settings_path.read_text(encoding="utf-8")
        except OSError:
            return False

    def before_run(self, spec: ToolSpec, ctx: RunContext) -> None:
        if not ctx.settings.features.enable_semgrep_auth:
            return
        if self._has_stored_token(ctx):
            logger.debug("Semgrep: using existing authentication from ~/.semgrep/settings.yml")
            return

        env_name = spec.auth_env or ctx.settings.versions.environment.semgrep_token
        token = ctx.environ.get(env_name) if env_name else None
        if not token:
            return
        logger.debug("Semgrep: logging in with environment token")
        _, err = ctx.gate.execute("semgrep", ["login", "--token", token], timeout=ctx.tool_timeout)
        if err is not None:
            # Never echo the token; the error only carries the exit status.
            logger.warning(f"Semgrep login failed: {err}")

    def _config_index(self, command: list[str]) -> Optional[int]:
        for i, arg in enumerate(command[:-1]):
            if arg == CONFIG_FLAG:
                return i + 1
        return None

    def prepare_command(self, spec: ToolSpec, ctx: RunContext) -> list[str]:
        command = list(spec.run_command)
        if not spec.fallback_config:
            return command

        index = self._config_index(command)
        if index is None:
            return command

        primary = command[index]
        _, err = ctx.gate.execute(
            "semgrep",
            ["scan", CONFIG_FLAG, primary, "--dryrun", "."],
            timeout=ctx.tool_timeout,
        )
        if err is not None:
            logger.warning(
                f"Semgrep config {primary} not usable, falling back to {spec.fallback_config}"
            )
            command[index] = spec.fallback_config
        return command
