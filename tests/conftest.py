# tests/conftest.py
"""Shared fixtures: a scripted command gate and ready-made settings."""

from dataclasses import replace
from typing import Callable, Optional, Union

import pytest

from ossf_attest.core.command_gate import CommandGate, PathRegistry
from ossf_attest.core.config import (
    PACKAGED_CONFIG,
    AttestSettings,
    FeatureFlags,
    load_versions_config,
)
from ossf_attest.core.exceptions import CommandFailedError
from ossf_attest.tools.base import RunContext

Response = Union[tuple, Callable[[str, list], tuple]]


class FakeGate(CommandGate):
    """Command gate that answers from a script instead of spawning processes.

    ``responses`` maps an executable name, or a ``"name subcommand"`` prefix,
    to an ``(output, error)`` tuple or a callable returning one. Unscripted
    commands succeed with empty output.
    """

    def __init__(self, responses: Optional[dict] = None, resolvable=()):
        super().__init__(PathRegistry())
        self.responses: dict[str, Response] = dict(responses or {})
        self.resolvable = dict.fromkeys(resolvable, True)
        self.calls: list[list[str]] = []

    def execute(self, name, args=(), timeout=None):
        args = list(args)
        self.calls.append([name, *args])
        response = None
        if args and f"{name} {args[0]}" in self.responses:
            response = self.responses[f"{name} {args[0]}"]
        elif name in self.responses:
            response = self.responses[name]
        if response is None:
            return "", None
        if callable(response):
            return response(name, args)
        return response

    def resolve(self, name):
        if name in self.resolvable:
            return f"/fake/bin/{name}"
        return None

    def commands(self, name: str) -> list[list[str]]:
        return [call for call in self.calls if call[0] == name]


def failed(message: str = "exited with status 1", output: str = "") -> tuple:
    return output, CommandFailedError(message, 1)


@pytest.fixture
def versions():
    return load_versions_config(str(PACKAGED_CONFIG))


@pytest.fixture
def make_settings(tmp_path, versions):
    """Factory for AttestSettings writing into ``tmp_path/out``."""

    def _make(features: Optional[dict] = None, prefs: Optional[dict] = None, **overrides):
        config = versions
        if features:
            config = replace(config, features=replace(FeatureFlags(), **features))
        if prefs:
            new_prefs = replace(config.config.install_preferences, **prefs)
            config = replace(config, config=replace(config.config, install_preferences=new_prefs))
        output_dir = tmp_path / "out"
        output_dir.mkdir(exist_ok=True)
        values = dict(
            project_name="demo",
            project_version="v1.0.0",
            output_dir=str(output_dir),
            local_tools_dir=str(tmp_path / "tools"),
            parallel=True,
            verbose=False,
            versions=config,
        )
        values.update(overrides)
        return AttestSettings(**values)

    return _make


@pytest.fixture
def make_ctx(make_settings, tmp_path):
    def _make(gate: FakeGate, environ: Optional[dict] = None, **settings_kwargs):
        home = tmp_path / "home"
        home.mkdir(exist_ok=True)
        return RunContext(
            settings=make_settings(**settings_kwargs),
            gate=gate,
            environ=environ or {},
            home_dir=home,
        )

    return _make
