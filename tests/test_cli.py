# tests/test_cli.py
"""Tests for the ossf-attest command line."""

import textwrap
from unittest.mock import Mock

import pytest
from typer.testing import CliRunner

from ossf_attest import cli
from ossf_attest.core.exceptions import InstallationError, PersistenceError
from ossf_attest.core.report import REPORT_JSON, REPORT_TEXT, aggregate
from ossf_attest.core.types import ExecutionResult

runner = CliRunner()

ENV_VARS = [
    "PROJECT_NAME", "PROJECT_VERSION", "OSSF_OUTPUT_DIR", "OSSF_VERBOSE",
    "OSSF_PARALLEL", "SEMGREP_APP_TOKEN",
]


class FakeOrchestrator:
    """Stands in for ToolOrchestrator; records the settings it was built with."""

    instances: list = []
    outcome: dict = {}
    error = None

    def __init__(self, settings):
        self.settings = settings
        self.run_errors = []
        FakeOrchestrator.instances.append(self)

    def run(self):
        if FakeOrchestrator.error is not None:
            raise FakeOrchestrator.error
        results = {
            name: ExecutionResult(tool=name, output_file=f"{name}.txt", success=ok, duration=0.1)
            for name, ok in FakeOrchestrator.outcome.items()
        }
        return aggregate(results, self.settings)


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "load_dotenv", Mock())
    monkeypatch.setattr(cli, "git_version", lambda: "v0.9.0")
    monkeypatch.setattr(cli, "ToolOrchestrator", FakeOrchestrator)
    FakeOrchestrator.instances = []
    FakeOrchestrator.outcome = {"gosec": True, "syft": True}
    FakeOrchestrator.error = None


class TestHelp:
    def test_help_lists_tools_and_environment(self):
        result = runner.invoke(cli.app, ["-h"])

        assert result.exit_code == 0
        assert "ossf-attest" in result.output
        assert "golangci-lint" in result.output
        assert "govulncheck" in result.output
        assert "OSSF_OUTPUT_DIR" in result.output
        assert "SEMGREP_APP_TOKEN" in result.output
        assert FakeOrchestrator.instances == []

    def test_auth_variable_hidden_when_disabled(self, tmp_path):
        config = tmp_path / "custom.yml"
        config.write_text(textwrap.dedent(
            """
            tools:
              gosec:
                version: "v2.22.4"
                install_method: "go_install"
                install_package: "github.com/securego/gosec/v2/cmd/gosec"
                run_command: ["gosec", "./..."]
                output_file: "gosec.txt"
            features:
              enable_semgrep_auth: false
            """
        ))

        result = runner.invoke(cli.app, ["--help", "-c", "custom.yml"])

        assert result.exit_code == 0
        assert "gosec" in result.output
        assert "SEMGREP_APP_TOKEN" not in result.output


class TestRun:
    def test_success_writes_reports(self, tmp_path):
        result = runner.invoke(cli.app, [])

        assert result.exit_code == 0
        assert (tmp_path / REPORT_JSON).exists()
        assert (tmp_path / REPORT_TEXT).exists()
        settings = FakeOrchestrator.instances[0].settings
        assert settings.project_name == tmp_path.name
        assert settings.project_version == "v0.9.0"
        assert settings.parallel is True

    def test_flags(self, tmp_path):
        result = runner.invoke(cli.app, ["-v", "-s", "-o", "reports"])

        assert result.exit_code == 0
        settings = FakeOrchestrator.instances[0].settings
        assert settings.verbose is True
        assert settings.parallel is False
        assert settings.output_dir == "reports"
        assert (tmp_path / "reports" / REPORT_JSON).exists()

    def test_unknown_options_are_ignored(self):
        result = runner.invoke(cli.app, ["--bogus", "extra"])
        assert result.exit_code == 0

    def test_tool_failures_exit_1(self):
        FakeOrchestrator.outcome = {"gosec": True, "syft": False}
        result = runner.invoke(cli.app, [])
        assert result.exit_code == 1

    def test_setup_failure_exit_2(self, tmp_path):
        FakeOrchestrator.error = InstallationError("tool setup failed: gosec: boom")
        result = runner.invoke(cli.app, [])

        assert result.exit_code == 2
        assert not (tmp_path / REPORT_JSON).exists()

    def test_bad_config_exit_3(self):
        result = runner.invoke(cli.app, ["-c", "missing.yml"])
        assert result.exit_code == 3
        assert FakeOrchestrator.instances == []

    def test_escaping_output_dir_exit_3(self):
        result = runner.invoke(cli.app, ["-o", "../outside"])
        assert result.exit_code == 3

    def test_environment_output_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OSSF_OUTPUT_DIR", "from-env")
        result = runner.invoke(cli.app, [])

        assert result.exit_code == 0
        assert (tmp_path / "from-env" / REPORT_TEXT).exists()

    def test_mistyped_config_exit_3(self, tmp_path):
        (tmp_path / "bad.yml").write_text(textwrap.dedent(
            """
            tools:
              gosec:
                version: "v2.22.4"
                install_method: "go_install"
                run_command: ["gosec", "./..."]
                output_file: "gosec.txt"
            config:
              execution:
                max_workers: "six"
            """
        ))

        result = runner.invoke(cli.app, ["-c", "bad.yml"])

        assert result.exit_code == 3
        assert FakeOrchestrator.instances == []

    def test_report_write_failure_exit_4(self, monkeypatch):
        monkeypatch.setattr(
            cli, "write_report", Mock(side_effect=PersistenceError("disk full"))
        )
        result = runner.invoke(cli.app, [])
        assert result.exit_code == 4
