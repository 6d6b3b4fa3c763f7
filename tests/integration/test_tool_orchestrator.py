# tests/integration/test_tool_orchestrator.py
"""Integration tests for the setup / run / report flow."""

import logging
import os
from dataclasses import replace

import pytest

from conftest import FakeGate, failed
from ossf_attest.core.config import ToolSpec
from ossf_attest.core.exceptions import InstallationError, PersistenceError
from ossf_attest.core.scheduler import Scheduler
from ossf_attest.core.tool_orchestrator import ToolOrchestrator
from ossf_attest.tools.base import AnalysisTool

ALL_EXECUTABLES = ["golangci-lint", "gosec", "govulncheck", "syft", "semgrep", "go"]


@pytest.fixture(autouse=True)
def no_system_dirs(monkeypatch):
    monkeypatch.setattr("ossf_attest.core.installer.KNOWN_SYSTEM_DIRS", ())


def build(settings, gate):
    return ToolOrchestrator(settings, gate=gate, environ={})


class TestToolOrchestrator:
    """End-to-end behaviour with a scripted command gate."""

    def test_tool_registration(self, make_settings):
        orchestrator = build(make_settings(), FakeGate())
        assert sorted(orchestrator.get_available_tools()) == sorted(
            ["golangci-lint", "gosec", "govulncheck", "syft", "semgrep", "go-test"]
        )
        assert orchestrator.get_tool("gosec").__class__.__name__ == "GosecTool"
        assert orchestrator.get_tool("nmap") is None

    def test_full_run(self, make_settings):
        gate = FakeGate(
            {"gosec -exclude-dir=build": failed("gosec exited with status 1", "G104 found")},
            resolvable=ALL_EXECUTABLES,
        )
        settings = make_settings()

        report = build(settings, gate).run()

        assert set(report.results) == {
            "golangci-lint", "gosec", "govulncheck", "syft", "semgrep", "go-test",
        }
        assert report.summary.total_tools == 6
        assert report.summary.failure_count == 1
        assert report.results["gosec"].success is False
        assert os.path.exists(os.path.join(settings.output_dir, "gosec.txt"))
        assert os.path.isdir(settings.local_tools_dir)
        assert settings.local_tools_dir in gate.registry

    def test_parallel_and_sequential_agree(self, make_settings):
        def outcomes(parallel):
            gate = FakeGate(
                {
                    "syft .": failed("syft exited with status 1"),
                    "govulncheck ./...": failed("govulncheck exited with status 3"),
                },
                resolvable=ALL_EXECUTABLES,
            )
            report = build(make_settings(parallel=parallel), gate).run()
            return {name: r.success for name, r in report.results.items()}, report.summary.failure_count

        assert outcomes(True) == outcomes(False)

    def test_parallel_disabled_by_feature_flag(self, make_settings):
        settings = make_settings(features={"enable_parallel_execution": False})
        assert settings.run_parallel is False
        report = build(settings, FakeGate(resolvable=ALL_EXECUTABLES)).run()
        assert report.summary.success_count == 6

    def test_unimplemented_tool_is_skipped_with_one_warning(self, make_settings, versions, caplog):
        extra = ToolSpec(
            name="trivy",
            version="0.50.0",
            install_method="pip",
            run_command=("trivy", "fs", "."),
            output_file="trivy.txt",
        )
        settings = make_settings(versions=replace(versions, tools=versions.tools + (extra,)))
        orchestrator = build(settings, FakeGate(resolvable=ALL_EXECUTABLES))

        with caplog.at_level(logging.WARNING):
            report = orchestrator.run()

        assert "trivy" not in report.results
        assert report.summary.total_tools == 6
        assert caplog.text.count("No tool implementation registered for trivy") == 1

    def test_registered_tool_runs(self, make_settings, versions):
        class CustomTool(AnalysisTool):
            name = "trivy"

        extra = ToolSpec(
            name="trivy",
            version="0.50.0",
            install_method="built-in",
            run_command=("make", "scan"),
            output_file="trivy.txt",
        )
        settings = make_settings(versions=replace(versions, tools=(extra,)))
        orchestrator = build(settings, FakeGate(resolvable=["make"]))
        orchestrator.register_tool("trivy", CustomTool)

        report = orchestrator.run()

        assert report.results["trivy"].success is True

    def test_install_failure_aborts_before_running(self, make_settings):
        gate = FakeGate(
            {"go install": failed("go exited with status 1")},
            resolvable=["golangci-lint", "govulncheck", "syft", "semgrep", "go"],
        )
        settings = make_settings(prefs={"install_retry_count": 0})

        with pytest.raises(InstallationError, match="gosec"):
            build(settings, gate).run()

        assert gate.commands("golangci-lint") == [["golangci-lint", "--version"]]
        assert not os.path.exists(os.path.join(settings.output_dir, "golangci-lint.txt"))

    def test_output_write_failures_are_reported(self, make_settings, tmp_path):
        settings = make_settings(output_dir=str(tmp_path / "missing"))
        orchestrator = build(settings, FakeGate(resolvable=ALL_EXECUTABLES))

        report = orchestrator.run()

        assert report.summary.failure_count == 0
        assert len(orchestrator.run_errors) == 6
        assert all(isinstance(e.error, PersistenceError) for e in orchestrator.run_errors)
        assert report.results["gosec"].persistence_error

    def test_scheduler_ceiling_from_config(self, make_settings):
        orchestrator = build(make_settings(), FakeGate())
        assert isinstance(orchestrator.scheduler, Scheduler)
        assert orchestrator.scheduler.max_workers == 6
