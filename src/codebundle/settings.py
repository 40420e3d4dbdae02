from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field, field_validator

from codebundle.config import OutputFormat
from codebundle.exceptions import ConfigurationError
from codebundle.file_manipulation import normalize_extensions, normalize_globs
from codebundle.languages import (
    LanguageProfile,
    ProjectType,
    default_extra_root_files,
    detect_project_type,
    profile_for,
)

ENV_FILE = find_dotenv(usecwd=True)
PROJECT_CONFIG_NAME = ".codebundle.yaml"
CONFIG_ENV_VAR = "CODEBUNDLE_CONFIG"
LOG_FILE_ENV_VAR = "CODEBUNDLE_LOG_FILE"


class Settings(BaseModel):
    """Configuration of a bundling run."""

    model_config = ConfigDict(extra="forbid")

    source_dir: str = Field(default=".", description="Source directory, relative to the working dir.")
    project_type: ProjectType = Field(default=ProjectType.AUTO, description="Project type or 'auto'.")
    output_prefix: str = Field(default="CODEBUNDLE", min_length=1, description="Artifact name prefix.")
    target_size_kb: int = Field(default=1000, gt=0, description="Chunk budget in kilobytes.")
    remove_comments: bool = Field(default=True, description="Strip comments from sources.")
    output_format: OutputFormat = Field(default=OutputFormat.TEXT, description="text, markdown or json.")
    extensions: list[str] = Field(default_factory=list, description="Overrides the profile extensions.")
    ignore_patterns: list[str] = Field(default_factory=list, description="Merged with profile ignores.")
    ignore_files: list[str] = Field(default_factory=list, description="Basenames always ignored.")
    extra_root_files: list[str] = Field(default_factory=list, description="Copied next to the output.")
    verbose: bool = Field(default=False, description="Log every file decision.")
    log_file: str = Field(default="", description="Log file path.")

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        return normalize_extensions(value)

    @field_validator("ignore_patterns")
    @classmethod
    def _normalize_patterns(cls, value: list[str]) -> list[str]:
        return normalize_globs(value)

    @computed_field
    @property
    def budget_bytes(self) -> int:
        """Chunk budget in bytes."""
        return self.target_size_kb * 1024

    def resolved_project_type(self, working_dir: Path) -> ProjectType:
        """Resolve `auto` by detection in the working dir, then in the source dir."""
        if self.project_type is not ProjectType.AUTO:
            return self.project_type
        detected = detect_project_type(working_dir)
        if detected is ProjectType.GENERIC:
            detected = detect_project_type(working_dir / self.source_dir)
        return detected

    def language_profile(self, working_dir: Path) -> LanguageProfile:
        return profile_for(self.resolved_project_type(working_dir))

    def effective_extensions(self, working_dir: Path) -> list[str]:
        """Custom extensions when given, the profile's otherwise (sorted)."""
        if self.extensions:
            return list(self.extensions)
        return sorted(self.language_profile(working_dir).extensions)

    def effective_ignore_patterns(self, working_dir: Path) -> list[str]:
        """Profile ignore globs followed by the custom ones, without duplicates."""
        profile = self.language_profile(working_dir)
        return normalize_globs([*profile.default_ignore_globs, *self.ignore_patterns])

    @classmethod
    def with_defaults(cls, working_dir: Path, project_type: ProjectType | None = None) -> Settings:
        """Build settings suited to the project found in `working_dir`.

        The source dir is the first default source root that exists; extra
        root files are the manifests typical for the project type.
        """
        detected = project_type or ProjectType.AUTO
        if detected is ProjectType.AUTO:
            detected = detect_project_type(working_dir)
        profile = profile_for(detected)
        source_dir = next(
            (root for root in profile.default_source_roots if (working_dir / root).is_dir()),
            ".",
        )
        return cls(
            source_dir=source_dir,
            project_type=detected,
            extra_root_files=default_extra_root_files(detected),
        )

    @classmethod
    def from_mapping(cls, data: dict[str, Any], *, source: str = "") -> Settings:
        """Validate a mapping of snake_case keys into settings.

        Raises:
            ConfigurationError: if a key is unknown or a value is invalid
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(source=source, message=f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml_file(cls, path: Path) -> Settings:
        """Load settings from a YAML config file.

        Raises:
            ConfigurationError: if the file is not valid YAML or not a mapping
        """
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(source=str(path), message=f"Cannot read configuration: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(source=str(path), message="Configuration must be a mapping.")
        return cls.from_mapping(data, source=str(path))

    def to_yaml(self) -> str:
        """Serialize the persistable fields as a YAML document."""
        data = self.model_dump(mode="json", exclude={"budget_bytes", "log_file"})
        header = (
            "# codebundle configuration\n"
            f"# project_type: auto, {', '.join(t.value for t in ProjectType if t is not ProjectType.AUTO)}\n"
        )
        return header + yaml.safe_dump(data, sort_keys=False)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_yaml(), encoding="utf-8")


def environment() -> dict[str, str]:
    """Variables from the discovered `.env` file, overridden by the process environment."""
    values = {k: v for k, v in dotenv_values(ENV_FILE).items() if v is not None} if ENV_FILE else {}
    values.update(os.environ)
    return values


def config_file_path(working_dir: Path, explicit: str | Path | None = None) -> Path | None:
    """Locate the config file: explicit path, then `CODEBUNDLE_CONFIG`, then `.codebundle.yaml`."""
    if explicit:
        return (working_dir / explicit).resolve()
    from_env = environment().get(CONFIG_ENV_VAR, "").strip()
    if from_env:
        return (working_dir / from_env).resolve()
    candidate = working_dir / PROJECT_CONFIG_NAME
    return candidate if candidate.is_file() else None


def load_settings(
    working_dir: Path,
    *,
    config_file: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Assemble settings: CLI overrides > config file > detected defaults.

    Args:
        working_dir (Path): the project directory
        config_file (str | Path | None): explicit config file path
        overrides (dict[str, Any] | None): values set on the command line; None
            values are ignored

    Raises:
        ConfigurationError: if an explicit config file is missing or any source is invalid

    Returns:
        Settings: the merged settings
    """
    path = config_file_path(working_dir, config_file)
    if path is not None:
        if not path.is_file():
            raise ConfigurationError(source=str(path), message="Configuration file not found.")
        base = Settings.from_yaml_file(path)
    else:
        base = Settings.with_defaults(working_dir)

    data = base.model_dump(exclude={"budget_bytes"})
    data.update({k: v for k, v in (overrides or {}).items() if v is not None})
    if not data.get("log_file"):
        data["log_file"] = environment().get(LOG_FILE_ENV_VAR, "")
    return Settings.from_mapping(data, source=str(path) if path else "")
