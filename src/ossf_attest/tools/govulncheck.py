import logging
from typing import Optional

from ..core.config import ToolSpec
from ..core.exceptions import ValidationError
from ..core.input_validator import InputValidator
from .base import AnalysisTool, RunContext

logger = logging.getLogger(__name__)


class GovulncheckTool(AnalysisTool):
    """Go vulnerability checker.

    ``govulncheck version`` does not report the module version it was built
    from, so when versions are compared the installer asks the Go toolchain
    for the module version instead.
    """

    name = "govulncheck"
    description = "Go vulnerability checker"

    def local_version(self, spec: ToolSpec, ctx: RunContext) -> Optional[str]:
        prefs = ctx.settings.versions.config.install_preferences
        if prefs.prefer_local or not ctx.settings.features.enable_version_checking:
            return super().local_version(spec, ctx)

        if super().local_version(spec, ctx) is None:
            return None
        try:
            package = InputValidator.validate_go_install_package(spec.install_package)
        except ValidationError as e:
            logger.warning(f"Invalid package name for {spec.name} version check: {e}")
            return None

        output, err = ctx.gate.execute(
            "go", ["list", "-m", "-f", "{{.Version}}", package], timeout=ctx.tool_timeout
        )
        if err is not None:
            logger.debug(f"Module version lookup for {spec.name} failed: {err}")
            return None
        return output.strip() or None
