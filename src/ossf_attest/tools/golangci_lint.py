from .base import AnalysisTool


class GolangciLintTool(AnalysisTool):
    """Go linter aggregator; runs with the configured command as-is."""

    name = "golangci-lint"
    description = "Go linter aggregator with security rules"
