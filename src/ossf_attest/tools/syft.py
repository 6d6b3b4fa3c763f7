from typing import Optional

from ..core.config import ToolSpec
from .base import AnalysisTool, RunContext


class SyftTool(AnalysisTool):
    """SBOM generator. Only a successful run produces an SBOM file."""

    name = "syft"
    description = "SBOM generation tool"
    persist_on_failure = False

    def skip_reason(self, spec: ToolSpec, ctx: RunContext) -> Optional[str]:
        if not ctx.settings.features.enable_sbom_generation:
            return "SBOM generation disabled by feature flag"
        return None

    def prepare_command(self, spec: ToolSpec, ctx: RunContext) -> list[str]:
        return list(spec.run_command) + [
            "--source-name",
            ctx.settings.project_name,
            "--source-version",
            ctx.settings.project_version,
        ]
