from .base import AnalysisTool


class GosecTool(AnalysisTool):
    """Go source security scanner."""

    name = "gosec"
    description = "Go security scanner"
