from pathlib import Path

import pytest

from codebundle.languages import (
    PROFILES,
    CommentGrammar,
    ProjectType,
    default_extra_root_files,
    detect_project_type,
    fence_language,
    profile_for,
)


@pytest.mark.unit
def test_every_concrete_project_type_has_a_profile() -> None:
    concrete = {t for t in ProjectType if t is not ProjectType.AUTO}

    assert set(PROFILES) == concrete
    for project_type, profile in PROFILES.items():
        assert profile.project_type is project_type
        assert profile.extensions
        assert all(ext.startswith(".") for ext in profile.extensions)


@pytest.mark.unit
def test_registry_is_read_only() -> None:
    with pytest.raises(TypeError):
        PROFILES[ProjectType.DART] = PROFILES[ProjectType.GENERIC]  # type: ignore[index]


@pytest.mark.unit
def test_dart_profile_matches_known_table() -> None:
    profile = profile_for(ProjectType.DART)

    assert profile.extensions == frozenset({".dart"})
    assert profile.comment_grammar is CommentGrammar.C_STYLE
    assert "*.g.dart" in profile.default_ignore_globs
    assert profile.default_source_roots[0] == "lib"


@pytest.mark.unit
def test_grammars_by_project_type() -> None:
    assert profile_for("python").comment_grammar is CommentGrammar.PYTHON_STYLE
    assert profile_for("ruby").comment_grammar is CommentGrammar.HASH_STYLE
    assert profile_for("web").comment_grammar is CommentGrammar.MIXED_WEB
    assert profile_for("generic").comment_grammar is CommentGrammar.HASH_STYLE


@pytest.mark.unit
@pytest.mark.parametrize("tag", ["auto", "cobol", ""])
def test_unknown_or_auto_tags_fall_back_to_generic(tag: str) -> None:
    assert profile_for(tag) is PROFILES[ProjectType.GENERIC]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("marker", "expected"),
    [
        ("pubspec.yaml", ProjectType.DART),
        ("pyproject.toml", ProjectType.PYTHON),
        ("package.json", ProjectType.JAVASCRIPT),
        ("tsconfig.json", ProjectType.TYPESCRIPT),
        ("go.mod", ProjectType.GO),
        ("Cargo.toml", ProjectType.RUST),
        ("build.gradle.kts", ProjectType.KOTLIN),
        ("Gemfile", ProjectType.RUBY),
        ("index.html", ProjectType.WEB),
    ],
)
def test_detect_project_type_from_marker(tmp_path: Path, marker: str, expected: ProjectType) -> None:
    (tmp_path / marker).write_text("", encoding="utf-8")

    assert detect_project_type(tmp_path) is expected


@pytest.mark.unit
def test_detect_project_type_uses_fixed_order(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text("{}", encoding="utf-8")
    (tmp_path / "tsconfig.json").write_text("{}", encoding="utf-8")

    assert detect_project_type(tmp_path) is ProjectType.JAVASCRIPT


@pytest.mark.unit
def test_detect_project_type_defaults_to_generic(tmp_path: Path) -> None:
    assert detect_project_type(tmp_path) is ProjectType.GENERIC


@pytest.mark.unit
def test_default_extra_root_files() -> None:
    assert default_extra_root_files(ProjectType.DART) == ["pubspec.yaml", "analysis_options.yaml"]
    assert default_extra_root_files(ProjectType.GENERIC) == ["README.md"]


@pytest.mark.unit
def test_fence_language() -> None:
    assert fence_language("lib/main.dart") == "dart"
    assert fence_language("src/App.TSX") == "tsx"
    assert fence_language("notes.unknown") == ""
