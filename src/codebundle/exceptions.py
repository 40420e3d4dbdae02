from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CodeBundleError(Exception):
    """Base exception for errors in the codebundle package."""

    message: str = "codebundle failed."

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class SourceDirectoryNotFoundError(CodeBundleError):
    """Raised when the configured source directory does not exist."""

    folder: Path = Path()
    message: str = "Source directory does not exist."

    def __str__(self) -> str:
        return f"{self.message} ({self.folder})"


@dataclass(frozen=True)
class ConfigurationError(CodeBundleError):
    """Raised when configuration cannot be parsed into recognized fields."""

    source: str = ""
    message: str = "Invalid configuration."

    def __str__(self) -> str:
        if self.source:
            return f"{self.message} ({self.source})"
        return self.message


@dataclass(frozen=True)
class OutputWriteError(CodeBundleError):
    """Raised when an output artifact cannot be written."""

    path: Path = Path()
    reason: str = ""
    message: str = "Could not write output artifact."

    def __str__(self) -> str:
        return f"{self.message} {self.path}: {self.reason}"
