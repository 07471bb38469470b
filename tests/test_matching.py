"""Tests for covrig.matching."""

from __future__ import annotations

from covrig.matching import (
    DEFAULT_EXCLUDE,
    MANDATORY_EXCLUDE,
    GlobClassifier,
    expand_braces,
    match_any,
    match_glob,
    prep_glob_patterns,
)


class TestPrepGlobPatterns:
    def test_none_stays_none(self) -> None:
        assert prep_glob_patterns(None) is None

    def test_directory_pattern_gets_recursive_sibling(self) -> None:
        assert prep_glob_patterns(["src"]) == ("src/**", "src")

    def test_trailing_slash_is_normalised_for_sibling(self) -> None:
        assert prep_glob_patterns(["build/"]) == ("build/**", "build/")

    def test_recursive_pattern_is_kept_alone(self) -> None:
        assert prep_glob_patterns(["lib/**"]) == ("lib/**",)

    def test_order_preserved_and_duplicates_dropped(self) -> None:
        result = prep_glob_patterns(["a", "a/**", "b"])
        assert result == ("a/**", "a", "b/**", "b")

    def test_deterministic(self) -> None:
        patterns = ["x/*.py", "y", "z/**"]
        assert prep_glob_patterns(patterns) == prep_glob_patterns(list(patterns))


class TestExpandBraces:
    def test_no_braces(self) -> None:
        assert expand_braces("src/*.py") == ("src/*.py",)

    def test_empty_alternative(self) -> None:
        assert expand_braces("test{,_*}.py") == ("test.py", "test_*.py")

    def test_multiple_groups(self) -> None:
        assert set(expand_braces("{a,b}/{c,d}.py")) == {"a/c.py", "a/d.py", "b/c.py", "b/d.py"}


class TestMatchGlob:
    def test_globstar_spans_segments(self) -> None:
        assert match_glob("src/a/b/c.py", "src/**")
        assert match_glob("src/a/b/c.py", "src/**/c.py")

    def test_globstar_matches_zero_segments(self) -> None:
        assert match_glob("c.py", "**/c.py")
        assert match_glob("src", "src/**")

    def test_star_stays_in_one_segment(self) -> None:
        assert match_glob("a.py", "*.py")
        assert not match_glob("pkg/a.py", "*.py")

    def test_windows_separators(self) -> None:
        assert match_glob("pkg\\sub\\a.py", "pkg/**/*.py")

    def test_match_any(self) -> None:
        assert match_any("lib/x.py", ["docs/**", "lib/*.py"])
        assert not match_any("lib/x.py", [])


class TestGlobClassifier:
    def test_exclude_test_directory_without_include(self) -> None:
        classifier = GlobClassifier(exclude=["test/**"])
        assert not classifier.should_instrument("/p/test/foo.py", "test/foo.py")
        assert classifier.should_instrument("/p/lib/foo.py", "lib/foo.py")

    def test_no_include_means_everything_is_a_candidate(self) -> None:
        classifier = GlobClassifier(exclude=[])
        assert classifier.include is None
        assert classifier.should_instrument("/p/anything/at/all.py", "anything/at/all.py")

    def test_include_restricts_candidates(self) -> None:
        classifier = GlobClassifier(include=["src"], exclude=[])
        assert classifier.should_instrument("/p/src/pkg/mod.py", "src/pkg/mod.py")
        assert not classifier.should_instrument("/p/scripts/run.py", "scripts/run.py")

    def test_exclude_wins_over_include(self) -> None:
        classifier = GlobClassifier(include=["src/**"], exclude=["src/vendor"])
        assert not classifier.should_instrument("/p/src/vendor/x.py", "src/vendor/x.py")
        assert classifier.should_instrument("/p/src/app.py", "src/app.py")

    def test_installed_packages_always_excluded(self) -> None:
        classifier = GlobClassifier(include=["**"], exclude=[])
        rel = ".venv/lib/python3.12/site-packages/pkg/mod.py"
        assert not classifier.should_instrument(f"/p/{rel}", rel)

    def test_files_outside_project_always_excluded(self) -> None:
        classifier = GlobClassifier(exclude=[])
        rel = "../../usr/lib/python3/json/decoder.py"
        assert not classifier.should_instrument("/usr/lib/python3/json/decoder.py", rel)

    def test_mandatory_rules_come_first(self) -> None:
        classifier = GlobClassifier(exclude=["docs"])
        assert classifier.exclude[: len(MANDATORY_EXCLUDE)] == MANDATORY_EXCLUDE
        assert "docs/**" in classifier.exclude

    def test_leading_dot_slash_is_ignored(self) -> None:
        classifier = GlobClassifier(exclude=["test/**"])
        assert not classifier.should_instrument("/p/test/foo.py", "./test/foo.py")

    def test_default_exclude_covers_test_files(self) -> None:
        classifier = GlobClassifier()
        assert classifier.exclude[len(MANDATORY_EXCLUDE) :] == prep_glob_patterns(DEFAULT_EXCLUDE)
        assert not classifier.should_instrument("/p/tests/test_a.py", "tests/test_a.py")
        assert not classifier.should_instrument("/p/pkg/test_b.py", "pkg/test_b.py")
        assert not classifier.should_instrument("/p/pkg/conftest.py", "pkg/conftest.py")
        assert not classifier.should_instrument("/p/test.py", "test.py")
        assert classifier.should_instrument("/p/pkg/testing.py", "pkg/testing.py")

    def test_absolute_path_patterns(self) -> None:
        classifier = GlobClassifier(exclude=["/p/generated/**"])
        assert not classifier.should_instrument("/p/generated/a.py", "generated/a.py")

    def test_same_input_same_answer(self) -> None:
        a = GlobClassifier(include=["lib"], exclude=["lib/skip"])
        b = GlobClassifier(include=["lib"], exclude=["lib/skip"])
        for rel in ("lib/a.py", "lib/skip/b.py", "other/c.py"):
            assert a.should_instrument(f"/p/{rel}", rel) == b.should_instrument(f"/p/{rel}", rel)
