from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from collections.abc import Mapping


class ProjectType(StrEnum):
    """Project-type tags understood by the registry.

    `AUTO` is a request for detection, not a profile of its own.
    """

    AUTO = auto()
    DART = auto()
    PYTHON = auto()
    JAVASCRIPT = auto()
    TYPESCRIPT = auto()
    GO = auto()
    RUST = auto()
    JAVA = auto()
    KOTLIN = auto()
    SWIFT = auto()
    CPP = auto()
    CSHARP = auto()
    RUBY = auto()
    PHP = auto()
    WEB = auto()
    GENERIC = auto()


class CommentGrammar(StrEnum):
    """Families of comment delimiters."""

    C_STYLE = "c_style"
    PYTHON_STYLE = "python_style"
    HASH_STYLE = "hash_style"
    HTML_STYLE = "html_style"
    MIXED_WEB = "mixed_web"


class LanguageProfile(BaseModel):
    """Static description of how a project type is scanned.

    Attributes:
        project_type: The tag this profile is registered under.
        extensions: File-name suffixes (with leading dot) selected for scanning.
        comment_grammar: How comments are delimited in these files.
        default_ignore_globs: Ignore globs applied before any custom pattern.
        default_source_roots: Candidate source directories, in preference order.
    """

    model_config = ConfigDict(frozen=True)

    project_type: ProjectType
    extensions: frozenset[str] = Field(..., description="Suffixes to include")
    comment_grammar: CommentGrammar
    default_ignore_globs: tuple[str, ...] = ()
    default_source_roots: tuple[str, ...] = (".",)


_BUILD_OUTPUT_IGNORES = ("target/*", "build/*", "*.class", ".gradle/*", "out/*")

_PROFILES: dict[ProjectType, LanguageProfile] = {
    ProjectType.DART: LanguageProfile(
        project_type=ProjectType.DART,
        extensions=frozenset({".dart"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=(
            "*.g.dart",
            "*.freezed.dart",
            "*.gr.dart",
            "*.artifact.dart",
            "*/generated/*",
            ".dart_tool/*",
            "build/*",
        ),
        default_source_roots=("lib", "bin", "src"),
    ),
    ProjectType.PYTHON: LanguageProfile(
        project_type=ProjectType.PYTHON,
        extensions=frozenset({".py", ".pyw", ".pyi"}),
        comment_grammar=CommentGrammar.PYTHON_STYLE,
        default_ignore_globs=(
            "__pycache__/*",
            "*.pyc",
            ".venv/*",
            "venv/*",
            ".env/*",
            "env/*",
            "*.egg-info/*",
            "dist/*",
            "build/*",
            ".tox/*",
            ".pytest_cache/*",
        ),
        default_source_roots=("src", "."),
    ),
    ProjectType.JAVASCRIPT: LanguageProfile(
        project_type=ProjectType.JAVASCRIPT,
        extensions=frozenset({".js", ".jsx", ".mjs", ".cjs"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=(
            "node_modules/*",
            "dist/*",
            "build/*",
            "*.min.js",
            "*.bundle.js",
            "coverage/*",
            ".next/*",
            ".nuxt/*",
        ),
        default_source_roots=("src", "lib", "."),
    ),
    ProjectType.TYPESCRIPT: LanguageProfile(
        project_type=ProjectType.TYPESCRIPT,
        extensions=frozenset({".ts", ".tsx", ".mts", ".cts"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=(
            "node_modules/*",
            "dist/*",
            "build/*",
            "*.d.ts",
            "*.js.map",
            "coverage/*",
            ".next/*",
            ".nuxt/*",
        ),
        default_source_roots=("src", "lib", "."),
    ),
    ProjectType.GO: LanguageProfile(
        project_type=ProjectType.GO,
        extensions=frozenset({".go"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=("vendor/*", "*_test.go", "*.pb.go", "bin/*"),
        default_source_roots=("cmd", "pkg", "internal", "."),
    ),
    ProjectType.RUST: LanguageProfile(
        project_type=ProjectType.RUST,
        extensions=frozenset({".rs"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=("target/*", "*.rlib"),
        default_source_roots=("src",),
    ),
    ProjectType.JAVA: LanguageProfile(
        project_type=ProjectType.JAVA,
        extensions=frozenset({".java"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=_BUILD_OUTPUT_IGNORES,
        default_source_roots=("src/main/java", "src"),
    ),
    ProjectType.KOTLIN: LanguageProfile(
        project_type=ProjectType.KOTLIN,
        extensions=frozenset({".kt", ".kts"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=_BUILD_OUTPUT_IGNORES,
        default_source_roots=("src/main/kotlin", "src"),
    ),
    ProjectType.SWIFT: LanguageProfile(
        project_type=ProjectType.SWIFT,
        extensions=frozenset({".swift"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=(".build/*", "DerivedData/*", "*.xcodeproj/*", "Pods/*"),
        default_source_roots=("Sources", "src", "."),
    ),
    ProjectType.CPP: LanguageProfile(
        project_type=ProjectType.CPP,
        extensions=frozenset({".c", ".cpp", ".cc", ".cxx", ".h", ".hpp", ".hxx"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=(
            "build/*",
            "cmake-build-*/*",
            "*.o",
            "*.a",
            "*.so",
            "*.dylib",
            "*.exe",
        ),
        default_source_roots=("src", "include", "."),
    ),
    ProjectType.CSHARP: LanguageProfile(
        project_type=ProjectType.CSHARP,
        extensions=frozenset({".cs"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=("bin/*", "obj/*", "*.Designer.cs", "*.g.cs", "packages/*"),
        default_source_roots=("src", "."),
    ),
    ProjectType.RUBY: LanguageProfile(
        project_type=ProjectType.RUBY,
        extensions=frozenset({".rb", ".rake", ".gemspec"}),
        comment_grammar=CommentGrammar.HASH_STYLE,
        default_ignore_globs=("vendor/*", ".bundle/*", "coverage/*", "tmp/*", "log/*"),
        default_source_roots=("lib", "app", "src", "."),
    ),
    ProjectType.PHP: LanguageProfile(
        project_type=ProjectType.PHP,
        extensions=frozenset({".php", ".phtml"}),
        comment_grammar=CommentGrammar.C_STYLE,
        default_ignore_globs=(
            "vendor/*",
            "node_modules/*",
            "cache/*",
            "storage/*",
            "bootstrap/cache/*",
        ),
        default_source_roots=("src", "app", "lib", "."),
    ),
    ProjectType.WEB: LanguageProfile(
        project_type=ProjectType.WEB,
        extensions=frozenset(
            {".html", ".htm", ".css", ".scss", ".sass", ".less", ".js", ".vue", ".svelte"},
        ),
        comment_grammar=CommentGrammar.MIXED_WEB,
        default_ignore_globs=(
            "node_modules/*",
            "dist/*",
            "build/*",
            "*.min.js",
            "*.min.css",
            "public/*",
        ),
        default_source_roots=("src", "."),
    ),
    ProjectType.GENERIC: LanguageProfile(
        project_type=ProjectType.GENERIC,
        extensions=frozenset(
            {
                ".txt",
                ".md",
                ".json",
                ".yaml",
                ".yml",
                ".xml",
                ".toml",
                ".cfg",
                ".ini",
                ".conf",
                ".sh",
                ".bash",
                ".zsh",
                ".fish",
            },
        ),
        comment_grammar=CommentGrammar.HASH_STYLE,
        default_ignore_globs=(
            ".git/*",
            ".svn/*",
            ".hg/*",
            "node_modules/*",
            "__pycache__/*",
            ".idea/*",
            ".vscode/*",
            ".DS_Store",
            "Thumbs.db",
        ),
        default_source_roots=(".",),
    ),
}

PROFILES: Mapping[ProjectType, LanguageProfile] = MappingProxyType(_PROFILES)

# Checked in order; the first marker found wins.
PROJECT_MARKERS: tuple[tuple[str, ProjectType], ...] = (
    ("pubspec.yaml", ProjectType.DART),
    ("requirements.txt", ProjectType.PYTHON),
    ("pyproject.toml", ProjectType.PYTHON),
    ("setup.py", ProjectType.PYTHON),
    ("Pipfile", ProjectType.PYTHON),
    ("package.json", ProjectType.JAVASCRIPT),
    ("tsconfig.json", ProjectType.TYPESCRIPT),
    ("go.mod", ProjectType.GO),
    ("Cargo.toml", ProjectType.RUST),
    ("pom.xml", ProjectType.JAVA),
    ("build.gradle", ProjectType.JAVA),
    ("build.gradle.kts", ProjectType.KOTLIN),
    ("Package.swift", ProjectType.SWIFT),
    ("CMakeLists.txt", ProjectType.CPP),
    ("Gemfile", ProjectType.RUBY),
    ("composer.json", ProjectType.PHP),
    ("index.html", ProjectType.WEB),
)

_EXTRA_ROOT_FILES: dict[ProjectType, tuple[str, ...]] = {
    ProjectType.DART: ("pubspec.yaml", "analysis_options.yaml"),
    ProjectType.PYTHON: ("requirements.txt", "pyproject.toml", "setup.py"),
    ProjectType.JAVASCRIPT: ("package.json", "tsconfig.json"),
    ProjectType.TYPESCRIPT: ("package.json", "tsconfig.json"),
    ProjectType.WEB: ("package.json", "tsconfig.json"),
    ProjectType.GO: ("go.mod", "go.sum"),
    ProjectType.RUST: ("Cargo.toml",),
    ProjectType.JAVA: ("pom.xml", "build.gradle", "build.gradle.kts"),
    ProjectType.KOTLIN: ("pom.xml", "build.gradle", "build.gradle.kts"),
    ProjectType.RUBY: ("Gemfile", "Gemfile.lock"),
    ProjectType.PHP: ("composer.json",),
}

_FENCE_LANGUAGE: dict[str, str] = {
    ".bash": "bash",
    ".c": "c",
    ".cc": "cpp",
    ".cfg": "ini",
    ".cjs": "javascript",
    ".conf": "ini",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".css": "css",
    ".cts": "typescript",
    ".cxx": "cpp",
    ".dart": "dart",
    ".fish": "fish",
    ".gemspec": "ruby",
    ".go": "go",
    ".h": "c",
    ".hpp": "cpp",
    ".htm": "html",
    ".html": "html",
    ".hxx": "cpp",
    ".ini": "ini",
    ".java": "java",
    ".js": "javascript",
    ".json": "json",
    ".jsx": "jsx",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".less": "less",
    ".md": "markdown",
    ".mjs": "javascript",
    ".mts": "typescript",
    ".php": "php",
    ".phtml": "php",
    ".py": "python",
    ".pyi": "python",
    ".pyw": "python",
    ".rake": "ruby",
    ".rb": "ruby",
    ".rs": "rust",
    ".sass": "sass",
    ".scss": "scss",
    ".sh": "bash",
    ".svelte": "svelte",
    ".swift": "swift",
    ".toml": "toml",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".vue": "vue",
    ".xml": "xml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".zsh": "bash",
}


def profile_for(project_type: ProjectType | str) -> LanguageProfile:
    """Look up the profile registered for a project type.

    Args:
        project_type (ProjectType | str): the tag to resolve. `auto` and unknown
            tags resolve to the generic profile.

    Returns:
        LanguageProfile: the registered profile
    """
    try:
        key = ProjectType(project_type)
    except ValueError:
        return PROFILES[ProjectType.GENERIC]
    return PROFILES.get(key, PROFILES[ProjectType.GENERIC])


def detect_project_type(directory: Path) -> ProjectType:
    """Guess the project type from marker files found in `directory`.

    Args:
        directory (Path): the directory to inspect (not recursive)

    Returns:
        ProjectType: the first matching type, or `ProjectType.GENERIC`
    """
    for marker, project_type in PROJECT_MARKERS:
        if (directory / marker).exists():
            return project_type
    return ProjectType.GENERIC


def default_extra_root_files(project_type: ProjectType) -> list[str]:
    """Manifest files worth shipping next to a bundle for this project type."""
    return list(_EXTRA_ROOT_FILES.get(project_type, ("README.md",)))


def fence_language(path: str | Path) -> str:
    """Get the code fence language for a file, or "" when unknown."""
    return _FENCE_LANGUAGE.get(Path(path).suffix.lower(), "")
