"""Tests for source glob lists and their expansion."""

import pytest

from ccbuild.sources import (
    POLYFILL_STUBS,
    build_source_filter,
    resolve_sources,
    source_globs,
    unneeded_files,
)


def touch(root, *paths):
    for rel in paths:
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("// " + rel)


class TestGlobMatching:
    """gulp-style glob semantics."""

    @pytest.mark.parametrize(
        "pattern, path",
        [
            ("src/**/*.js", "src/amp.js"),
            ("src/**/*.js", "src/service/timer.js"),
            ("builtins/**.js", "builtins/amp-img.js"),
            ("build/cc/**", "build/cc/_src_amp.js.map"),
            ("**/test-*.js", "test-helpers.js"),
            ("**/test-*.js", "test/functional/test-runtime.js"),
            ("third_party/caja/html-sanitizer.js", "third_party/caja/html-sanitizer.js"),
            ("src/polyfill?.js", "src/polyfills.js"),
        ],
    )
    def test_matches(self, pattern, path):
        assert build_source_filter([pattern]).match(path)

    @pytest.mark.parametrize(
        "pattern, path",
        [
            ("src/*.js", "src/service/timer.js"),
            ("src/**/*.js", "src/amp.json"),
            ("src/**/*.js", "extensions/src/amp.js"),
            ("build/polyfills.js", "build/polyfillsXjs"),
            ("src/?.js", "src/ab.js"),
            # A ** inside a path component does not cross directories.
            ("builtins/**.js", "builtins/sub/x.js"),
            ("node_modules/core-js/modules/**.js", "node_modules/core-js/modules/es6/x.js"),
        ],
    )
    def test_rejects(self, pattern, path):
        assert not build_source_filter([pattern]).match(path)

    def test_test_files_excluded_at_any_depth(self):
        source_filter = build_source_filter(["src/**/*.js", "!**_test.js"])
        assert source_filter.match("src/service/timer.js")
        assert not source_filter.match("src/service/timer_test.js")
        assert not source_filter.match("src/amp_test.js")

    def test_walk_bases_collapse_nested_directories(self):
        source_filter = build_source_filter([
            "build/**/*.js",
            "build/patched-module/x/y.js",
            "node_modules/core-js/modules/**.js",
            "!build/cc/**",
        ])
        assert source_filter.bases == ("build", "node_modules/core-js/modules")


class TestGlobLists:
    """Variant-specific source lists."""

    def test_without_polyfills_excludes_real_polyfills(self):
        globs = source_globs(include_polyfills=False)
        assert "!src/polyfills.js" in globs
        assert "!src/polyfills/**/*.js" in globs
        assert "!build/fake-module/src/polyfills.js" not in globs

    def test_with_polyfills_excludes_stubs(self):
        globs = source_globs(include_polyfills=True)
        assert "!build/fake-module/src/polyfills.js" in globs
        assert "!build/fake-module/src/polyfills/**/*.js" in globs
        assert "!src/polyfills.js" not in globs

    def test_lists_are_independent_copies(self):
        source_globs(True).append("extra")
        assert "extra" not in source_globs(True)

    def test_unneeded_files(self):
        assert unneeded_files(True) == [
            "build/fake-module/third_party/babel/custom-babel-helpers.js"
        ]
        assert unneeded_files(False)[1:] == POLYFILL_STUBS


class TestResolveSources:
    """Glob expansion against a checkout."""

    @pytest.fixture
    def checkout(self, tmp_path):
        touch(
            tmp_path,
            "src/amp.js",
            "src/polyfills.js",
            "src/polyfills/promise.js",
            "src/service/timer.js",
            "src/service/timer_test.js",
            "src/readme.md",
            "extensions/amp-ad/0.1/amp-ad.js",
            "extensions/amp-access/0.1/amp-login-done.js",
            "extensions/amp-access/0.1/access.extern.js",
            "build/cc/_src_amp.js",
            "build/fake-module/src/polyfills.js",
            "build/patched-module/document-register-element/build/document-register-element.max.js",
            "builtins/amp-img.js",
            "builtins/nested/deep.js",
            "third_party/caja/html-sanitizer.js",
            "node_modules/core-js/modules/es6.promise.js",
            "node_modules/core-js/modules/library/es6.promise.js",
            "node_modules/core-js/modules/es6/nested.js",
            "node_modules/left-pad/index.js",
            "test/functional/test-runtime.js",
        )
        return tmp_path

    def test_main_binary_sources(self, checkout):
        sources = resolve_sources(checkout, source_globs(include_polyfills=True))

        assert sources == [
            "build/patched-module/document-register-element/build/document-register-element.max.js",
            "builtins/amp-img.js",
            "extensions/amp-ad/0.1/amp-ad.js",
            "node_modules/core-js/modules/es6.promise.js",
            "src/amp.js",
            "src/polyfills.js",
            "src/polyfills/promise.js",
            "src/service/timer.js",
            "third_party/caja/html-sanitizer.js",
        ]

    def test_extension_sources_use_stubs(self, checkout):
        sources = resolve_sources(checkout, source_globs(include_polyfills=False))

        assert "build/fake-module/src/polyfills.js" in sources
        assert "src/polyfills.js" not in sources
        assert "src/polyfills/promise.js" not in sources

    def test_negation_applies_regardless_of_position(self, checkout):
        sources = resolve_sources(checkout, ["!src/amp.js", "src/*.js"])
        assert sources == ["src/polyfills.js"]

    def test_missing_directories_are_ignored(self, tmp_path):
        assert resolve_sources(tmp_path, ["nowhere/**/*.js", "missing.js"]) == []

    def test_component_double_star_stays_in_directory(self, checkout):
        sources = resolve_sources(checkout, source_globs(include_polyfills=True))

        assert "builtins/amp-img.js" in sources
        assert "builtins/nested/deep.js" not in sources
        assert "node_modules/core-js/modules/es6/nested.js" not in sources
