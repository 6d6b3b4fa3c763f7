# src/ossf_attest/core/input_validator.py
"""Argument, install-parameter and output-path validation."""

import os
import re
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

from .exceptions import ConfigurationError, PersistenceError, SecurityError, ValidationError

# Sequences rejected in any argument handed to the command gate. Arguments are
# passed as a vector, never through a shell, so these are a second line.
DANGEROUS_PATTERNS = ("$(", "`", "${", "||", "&&", ";", "|")


class InputValidator:
    """Validates values that end up in a subprocess argument vector."""

    VERSION_PATTERN = re.compile(r"^[a-zA-Z0-9.\-]+$")
    GO_PACKAGE_PATTERN = re.compile(r"^[a-zA-Z0-9./_\-]+$")
    PACKAGE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9._\-]+$")

    @classmethod
    def validate_command_arg(cls, arg: str) -> str:
        """Reject NUL bytes and shell metacharacter sequences."""
        if "\x00" in arg:
            raise SecurityError("argument contains null byte")
        for pattern in DANGEROUS_PATTERNS:
            if pattern in arg:
                raise SecurityError(
                    f"argument contains potentially dangerous pattern: {pattern}"
                )
        return arg

    @classmethod
    def validate_version_string(cls, version: str) -> str:
        if not version:
            raise ValidationError("version cannot be empty")
        if not cls.VERSION_PATTERN.match(version):
            bad = next(c for c in version if not re.match(r"[a-zA-Z0-9.\-]", c))
            raise ValidationError(f"version contains invalid character: {bad!r}")
        if ".." in version:
            raise ValidationError("version contains path traversal")
        return version

    @classmethod
    def validate_go_install_package(cls, package: str) -> str:
        """Validate a Go module path such as ``golang.org/x/vuln/cmd/govulncheck``."""
        if not package:
            raise ValidationError("package name cannot be empty")
        if not cls.GO_PACKAGE_PATTERN.match(package):
            raise ValidationError(f"package name contains invalid characters: {package}")
        if ".." in package:
            raise ValidationError("package name contains path traversal")
        if "." not in package or package.startswith("."):
            raise ValidationError("package name must be a valid Go module path")
        return package

    @classmethod
    def validate_package_name(cls, package: str) -> str:
        """Validate a Python distribution name passed to pip/pipx."""
        if not package:
            raise ValidationError("package name cannot be empty")
        if not cls.PACKAGE_NAME_PATTERN.match(package):
            raise ValidationError(f"package name contains invalid characters: {package}")
        return package

    @classmethod
    def validate_install_url(cls, url: str) -> str:
        if not url:
            raise ValidationError("install URL cannot be empty")
        parsed = urlparse(url)
        if parsed.scheme != "https":
            raise ValidationError("install URL must use HTTPS")
        if not parsed.netloc:
            raise ValidationError("install URL must include a domain")
        cls.validate_command_arg(url)
        return url

    @classmethod
    def validate_tools_dir(cls, directory: str) -> str:
        if not directory:
            raise ValidationError("local tools directory cannot be empty")
        if ".." in directory:
            raise ValidationError("local tools directory contains path traversal")
        return directory

    @classmethod
    def validate_installation_params(
        cls, install_url: str, local_tools_dir: str, version: str
    ) -> None:
        """Validate everything a script installer is invoked with."""
        cls.validate_install_url(install_url)
        cls.validate_tools_dir(local_tools_dir)
        cls.validate_version_string(version)


def sanitize_output_path(output_path: str, base: Optional[Union[str, Path]] = None) -> str:
    """Validate an output directory and create it.

    The resolved directory must stay within ``base`` (the current working
    directory by default). Returns the normalised, possibly relative, path.
    """
    if not output_path:
        raise ConfigurationError("output path cannot be empty")

    cleaned = os.path.normpath(output_path)
    base_dir = Path(base) if base is not None else Path.cwd()
    target = (base_dir / cleaned).resolve()
    rel = os.path.relpath(target, base_dir.resolve())
    if rel == ".." or rel.startswith(".." + os.sep):
        raise ConfigurationError(
            f"output path cannot traverse outside current directory: {output_path}"
        )

    try:
        target.mkdir(mode=0o750, parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"failed to create output directory: {e}") from e
    return cleaned


def safe_artifact_path(output_dir: Union[str, Path], filename: str) -> Path:
    """Resolve ``filename`` inside ``output_dir`` or raise SecurityError."""
    if not filename:
        raise SecurityError("invalid filename: empty")
    if ".." in filename or "/" in filename or "\\" in filename or os.path.isabs(filename):
        raise SecurityError(f"invalid filename: {filename}")

    base = Path(output_dir)
    full_path = base / filename
    rel = os.path.relpath(full_path.resolve(), base.resolve())
    if rel.startswith(".."):
        raise SecurityError(f"file path outside output directory: {filename}")
    return full_path


def safe_write_file(output_dir: Union[str, Path], filename: str, data: Union[str, bytes]) -> Path:
    """Write an artifact beneath ``output_dir`` with owner-only permissions."""
    try:
        path = safe_artifact_path(output_dir, filename)
    except SecurityError as e:
        raise PersistenceError(str(e)) from e

    payload = data.encode("utf-8") if isinstance(data, str) else data
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
    except OSError as e:
        raise PersistenceError(f"failed to write {path}: {e}") from e
    return path
