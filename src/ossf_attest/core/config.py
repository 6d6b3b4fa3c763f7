"""Configuration document loading and runtime settings.

The tool configuration lives in a ``versions.yml`` document (tools, app
metadata, global tunables, feature flags, environment variable names). It is
loaded once at startup and treated as read-only afterwards.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from rich.console import Console

from .exceptions import ConfigurationError
from .input_validator import sanitize_output_path

console = Console()
logger = logging.getLogger(__name__)

INSTALL_METHODS = ("script", "go_install", "pip", "built-in")
DEFAULT_CONFIG_NAME = "versions.yml"
PACKAGED_CONFIG = Path(__file__).resolve().parent.parent / "data" / DEFAULT_CONFIG_NAME


@dataclass(frozen=True)
class ToolSpec:
    name: str
    version: str
    install_method: str
    run_command: tuple[str, ...]
    output_file: str
    check_command: tuple[str, ...] = ()
    install_url: str = ""
    install_package: str = ""
    github_repo: str = ""
    description: str = ""
    special_handling: str = ""
    fallback_config: str = ""
    auth_env: str = ""

    @property
    def executable(self) -> str:
        """Name of the binary the installer must be able to resolve."""
        if self.check_command:
            return self.check_command[0]
        return self.run_command[0]

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "ToolSpec":
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"tool '{name}' must be a mapping")

        run_command = _string_tuple(data.get("run_command"), name, "run_command")
        if not run_command:
            raise ConfigurationError(f"tool '{name}' has no run_command")
        check_command = _string_tuple(data.get("check_command"), name, "check_command")

        method = str(data.get("install_method", "")).strip()
        if method not in INSTALL_METHODS:
            raise ConfigurationError(
                f"tool '{name}' has unknown install_method '{method}' "
                f"(expected one of {', '.join(INSTALL_METHODS)})"
            )

        output_file = str(data.get("output_file", "")).strip()
        if not output_file:
            raise ConfigurationError(f"tool '{name}' has no output_file")

        return cls(
            name=name,
            version=str(data.get("version", "")).strip(),
            install_method=method,
            run_command=run_command,
            output_file=output_file,
            check_command=check_command,
            install_url=str(data.get("install_url") or ""),
            install_package=str(data.get("install_package") or ""),
            github_repo=str(data.get("github_repo") or ""),
            description=str(data.get("description") or ""),
            special_handling=str(data.get("special_handling") or ""),
            fallback_config=str(data.get("fallback_config") or ""),
            auth_env=str(data.get("auth_env") or ""),
        )


def _string_tuple(value: Any, tool: str, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"tool '{tool}': {key} must be a list of strings")
    return tuple(value)


@dataclass(frozen=True)
class AppConfig:
    name: str = "ossf-attest"
    version: str = "0.0.0"
    description: str = ""
    default_project_name: str = ""


@dataclass(frozen=True)
class InstallPreferences:
    prefer_local: bool = True
    install_timeout: int = 300
    install_retry_count: int = 2
    install_backoff_seconds: float = 1.0


@dataclass(frozen=True)
class ExecutionSettings:
    max_tool_timeout: int = 600
    max_workers: int = 6


@dataclass(frozen=True)
class GlobalConfig:
    default_output_dir: str = "."
    local_tools_dir: str = ".local_tools/bin"
    parallel_by_default: bool = True
    install_preferences: InstallPreferences = field(default_factory=InstallPreferences)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)


@dataclass(frozen=True)
class FeatureFlags:
    enable_parallel_execution: bool = True
    enable_local_tool_installation: bool = True
    enable_pip_fallback_methods: bool = True
    enable_version_checking: bool = True
    enable_automatic_path_management: bool = True
    enable_coverage_generation: bool = True
    enable_sbom_generation: bool = True
    enable_semgrep_auth: bool = True


@dataclass(frozen=True)
class EnvMappings:
    project_name: str = "PROJECT_NAME"
    project_version: str = "PROJECT_VERSION"
    semgrep_token: str = "SEMGREP_APP_TOKEN"
    output_dir: str = "OSSF_OUTPUT_DIR"
    verbose: str = "OSSF_VERBOSE"
    parallel: str = "OSSF_PARALLEL"


@dataclass(frozen=True)
class VersionsConfig:
    """Parsed configuration document. Tools keep their document order."""

    tools: tuple[ToolSpec, ...]
    app: AppConfig = field(default_factory=AppConfig)
    config: GlobalConfig = field(default_factory=GlobalConfig)
    features: FeatureFlags = field(default_factory=FeatureFlags)
    environment: EnvMappings = field(default_factory=EnvMappings)

    def get_tool(self, name: str) -> Optional[ToolSpec]:
        for spec in self.tools:
            if spec.name == name:
                return spec
        return None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "VersionsConfig":
        if not isinstance(data, Mapping):
            raise ConfigurationError("configuration document must be a mapping")

        raw_tools = data.get("tools") or {}
        if not isinstance(raw_tools, Mapping) or not raw_tools:
            raise ConfigurationError("configuration document defines no tools")
        tools = tuple(ToolSpec.from_mapping(str(n), t) for n, t in raw_tools.items())

        raw_config = data.get("config") or {}
        if not isinstance(raw_config, Mapping):
            raise ConfigurationError("config section must be a mapping")
        raw_config = dict(raw_config)
        prefs = _section(InstallPreferences, raw_config.pop("install_preferences", None))
        execution = _section(ExecutionSettings, raw_config.pop("execution", None))
        global_config = replace(
            _section(GlobalConfig, raw_config),
            install_preferences=prefs,
            execution=execution,
        )

        return cls(
            tools=tools,
            app=_section(AppConfig, data.get("app")),
            config=global_config,
            features=_section(FeatureFlags, data.get("features")),
            environment=_section(EnvMappings, data.get("environment")),
        )


def _section(section_cls, raw: Any):
    """Build a frozen section dataclass, ignoring keys it does not declare."""
    if raw is None:
        return section_cls()
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"section for {section_cls.__name__} must be a mapping")
    known = section_cls.__dataclass_fields__
    unknown = sorted(set(raw) - set(known))
    if unknown:
        logger.debug(f"Ignoring unknown {section_cls.__name__} keys: {unknown}")
    values = {
        k: _coerce(section_cls.__name__, k, known[k].type, v)
        for k, v in raw.items()
        if k in known
    }
    try:
        return section_cls(**values)
    except TypeError as e:
        raise ConfigurationError(f"invalid {section_cls.__name__}: {e}") from e


def _coerce(section: str, key: str, expected: Any, value: Any) -> Any:
    """Check a scalar setting against its declared type."""
    if expected is bool:
        if not isinstance(value, bool):
            raise ConfigurationError(f"{section}.{key} must be true or false, got {value!r}")
        return value
    if expected in (int, float):
        # bool is an int subclass.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"{section}.{key} must be a number, got {value!r}")
        if expected is int and not float(value).is_integer():
            raise ConfigurationError(f"{section}.{key} must be a whole number, got {value!r}")
        if value < 0:
            raise ConfigurationError(f"{section}.{key} must not be negative, got {value!r}")
        return expected(value)
    if expected is str:
        if isinstance(value, (Mapping, list)):
            raise ConfigurationError(f"{section}.{key} must be a string, got {value!r}")
        return "" if value is None else str(value)
    return value


def find_config_path(explicit: Optional[str] = None) -> Path:
    """Locate the configuration document.

    Order: explicit path, ``./versions.yml``, the copy shipped in the package.
    """
    if explicit:
        candidate = Path(explicit)
    elif Path(DEFAULT_CONFIG_NAME).exists():
        candidate = Path(DEFAULT_CONFIG_NAME)
    else:
        candidate = PACKAGED_CONFIG

    if ".." in candidate.parts:
        raise ConfigurationError(
            f"invalid config path: path traversal detected in {candidate}"
        )
    return candidate


def load_versions_config(path: Optional[str] = None) -> VersionsConfig:
    config_path = find_config_path(path)
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(
            f"failed to read versions config from {config_path}: {e}"
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"failed to parse versions config: {e}") from e

    logger.debug(f"Loaded configuration from {config_path}")
    return VersionsConfig.from_mapping(data or {})


@dataclass
class AttestSettings:
    """Runtime settings for one attestation run."""

    project_name: str
    project_version: str
    output_dir: str
    local_tools_dir: str
    parallel: bool
    verbose: bool
    versions: VersionsConfig

    @property
    def features(self) -> FeatureFlags:
        return self.versions.features

    @property
    def run_parallel(self) -> bool:
        return self.parallel and self.versions.features.enable_parallel_execution


def _env_flag(value: Optional[str], default: bool) -> bool:
    if not value:
        return default
    return value.strip().lower() == "true"


def load_settings(
    versions: VersionsConfig,
    environ: Optional[Mapping[str, str]] = None,
    version_lookup=None,
) -> AttestSettings:
    """Combine the configuration document with environment overrides.

    ``version_lookup`` is called when no project version is set in the
    environment; it should return ``None`` when no version can be derived.
    """
    env = os.environ if environ is None else environ
    names = versions.environment

    project_name = (
        env.get(names.project_name)
        or versions.app.default_project_name
        or Path.cwd().name
    )

    project_version = env.get(names.project_version)
    if not project_version and version_lookup is not None:
        project_version = version_lookup()
    project_version = project_version or "dev"

    raw_output = env.get(names.output_dir)
    try:
        output_dir = sanitize_output_path(raw_output or versions.config.default_output_dir)
    except ConfigurationError as e:
        source = "environment" if raw_output else "default"
        raise ConfigurationError(f"invalid output directory from {source}: {e}") from e

    return AttestSettings(
        project_name=project_name,
        project_version=project_version,
        output_dir=output_dir,
        local_tools_dir=os.path.join(".", versions.config.local_tools_dir),
        parallel=_env_flag(env.get(names.parallel), versions.config.parallel_by_default),
        verbose=_env_flag(env.get(names.verbose), False),
        versions=versions,
    )
