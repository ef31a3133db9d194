"""Tests for the manifest resolver strategy chain."""

import pytest

from compliance.core.exceptions import ManifestNotFound, ManifestParseError
from compliance.services.manifest_resolver import (
    STRATEGY_EMPTY,
    normalize_repository_url,
    parse_requirements,
    read_project_info,
    resolve_manifest,
    resolve_package_lock,
)


class TestPackageLock:
    def test_v1_entries(self, make_project, offline_settings):
        root = make_project(
            {
                "package-lock.json": {
                    "lockfileVersion": 1,
                    "dependencies": {
                        "foo": {"version": "1.0.0", "license": "MIT"},
                        "bar": {"version": "2.1.0", "dev": True},
                    },
                }
            }
        )
        result = resolve_manifest(root, offline_settings)

        assert result.strategy == "package-lock"
        by_name = {p.name: p for p in result.packages}
        assert by_name["foo"].version == "1.0.0"
        assert by_name["foo"].declared_license == "MIT"
        assert by_name["bar"].scope == "dev"

    def test_v2_packages_skip_root_and_nested(self, make_project, offline_settings):
        root = make_project(
            {
                "package-lock.json": {
                    "lockfileVersion": 3,
                    "packages": {
                        "": {"name": "demo", "version": "1.0.0"},
                        "node_modules/a": {"version": "1.0.0"},
                        "node_modules/a/node_modules/b": {"version": "0.1.0"},
                        "node_modules/@scope/c": {"version": "2.0.0", "optional": True},
                    },
                }
            }
        )
        result = resolve_manifest(root, offline_settings)

        assert sorted(p.id for p in result.packages) == ["@scope/c@2.0.0", "a@1.0.0"]
        assert {p.name: p.scope for p in result.packages}["@scope/c"] == "optional"

    def test_n_entries_yield_n_records(self, make_project, offline_settings):
        dependencies = {f"pkg-{i}": {"version": f"1.0.{i}"} for i in range(25)}
        root = make_project({"package-lock.json": {"dependencies": dependencies}})

        result = resolve_manifest(root, offline_settings)

        assert len(result.packages) == 25

    def test_version_from_resolved_url(self, make_project, offline_settings):
        root = make_project(
            {
                "package-lock.json": {
                    "dependencies": {
                        "lodash": {
                            "resolved": "https://registry.npmjs.org/lodash/-/lodash-4.17.21.tgz"
                        }
                    }
                }
            }
        )
        result = resolve_manifest(root, offline_settings)

        assert result.packages[0].version == "4.17.21"
        assert result.packages[0].download_location.endswith("lodash-4.17.21.tgz")

    def test_missing_version_gets_placeholder(self, make_project, offline_settings):
        root = make_project({"package-lock.json": {"dependencies": {"odd": {}}}})
        result = resolve_manifest(root, offline_settings)
        assert result.packages[0].version == "0.0.0"

    def test_missing_lockfile_raises_not_found(self, tmp_path, offline_settings):
        with pytest.raises(ManifestNotFound):
            resolve_package_lock(tmp_path, offline_settings)

    def test_invalid_json_raises_parse_error(self, make_project, offline_settings):
        root = make_project({"package-lock.json": "{not json"})
        with pytest.raises(ManifestParseError):
            resolve_package_lock(root, offline_settings)


class TestPackageJson:
    def test_ranges_kept_verbatim(self, make_project, offline_settings):
        root = make_project(
            {
                "package.json": {
                    "name": "demo",
                    "dependencies": {"express": "^4.18.0"},
                    "devDependencies": {"jest": "29.0.0"},
                }
            }
        )
        result = resolve_manifest(root, offline_settings)

        assert result.strategy == "package-json"
        by_name = {p.name: p for p in result.packages}
        assert by_name["express"].version == "^4.18.0"
        assert by_name["express"].scope == "prod"
        assert by_name["jest"].scope == "dev"

    def test_broken_lockfile_falls_through(self, make_project, offline_settings):
        root = make_project(
            {
                "package-lock.json": "{broken",
                "package.json": {"dependencies": {"express": "^4.18.0"}},
            }
        )
        result = resolve_manifest(root, offline_settings)

        assert result.strategy == "package-json"
        assert result.attempts[0].strategy == "package-lock"
        assert result.attempts[0].status == "error"
        assert result.attempts[0].error
        assert result.strategy_chain == ["package-lock", "package-json"]

    def test_lockfile_wins_over_manifest(self, make_project, offline_settings):
        root = make_project(
            {
                "package-lock.json": {"dependencies": {"express": {"version": "4.18.2"}}},
                "package.json": {"dependencies": {"express": "^4.18.0"}},
            }
        )
        result = resolve_manifest(root, offline_settings)
        assert result.strategy == "package-lock"
        assert result.packages[0].version == "4.18.2"

    def test_manifest_without_dependencies_is_empty(self, make_project, offline_settings):
        root = make_project({"package.json": {"name": "demo"}})
        result = resolve_manifest(root, offline_settings)

        assert result.strategy == STRATEGY_EMPTY
        statuses = {a.strategy: a.status for a in result.attempts}
        assert statuses["package-json"] == "empty"


class TestRequirements:
    def test_parse_lines(self):
        text = "\n".join(
            [
                "# comment",
                "requests==2.31.0",
                "flask>=2.0,<3",
                "numpy",
                "-r other.txt",
                "git+https://github.com/o/r.git#egg=r",
                "Django[argon2]==4.2 ; python_version > '3.8'",
                "",
            ]
        )
        records = parse_requirements(text, "requirements-txt", "requirements.txt")

        assert [(r.name, r.version) for r in records] == [
            ("requests", "2.31.0"),
            ("flask", ">=2.0,<3"),
            ("numpy", "0.0.0"),
            ("Django", "4.2"),
        ]
        assert all(r.ecosystem == "PyPI" for r in records)

    def test_requirements_strategy(self, make_project, offline_settings):
        root = make_project({"requirements.txt": "requests==2.31.0\n"})
        result = resolve_manifest(root, offline_settings)

        assert result.strategy == "requirements-txt"
        assert result.packages[0].id == "requests@2.31.0"


class TestRecursiveScan:
    def test_nested_manifests(self, make_project, offline_settings):
        root = make_project(
            {
                "packages/web/package.json": {
                    "name": "web",
                    "version": "1.2.0",
                    "license": "MIT",
                    "dependencies": {"react": "^18.2.0"},
                },
                "services/api/requirements.txt": "fastapi==0.110.0\n",
                "node_modules/ignored/package.json": {
                    "name": "ignored",
                    "dependencies": {"left-pad": "1.0.0"},
                },
            }
        )
        result = resolve_manifest(root, offline_settings)

        assert result.strategy == "recursive-scan"
        names = {p.name for p in result.packages}
        assert names == {"web", "react", "fastapi"}
        web = next(p for p in result.packages if p.name == "web")
        assert web.scope == "workspace"
        assert web.source_file == "packages/web/package.json"

    def test_depth_limit(self, make_project, offline_settings):
        offline_settings.SCAN_MAX_DEPTH = 1
        root = make_project({"a/b/c/package.json": {"dependencies": {"deep": "1.0.0"}}})

        result = resolve_manifest(root, offline_settings)

        assert result.strategy == STRATEGY_EMPTY


class TestEmptyDirectory:
    def test_empty_directory_yields_empty_strategy(self, tmp_path, offline_settings):
        result = resolve_manifest(tmp_path, offline_settings)

        assert result.strategy == STRATEGY_EMPTY
        assert result.packages == []
        assert result.strategy_chain == [
            "package-lock",
            "package-json",
            "requirements-txt",
            "recursive-scan",
            "empty",
        ]
        assert all(a.status == "not_found" for a in result.attempts[:-1])


class TestProjectInfo:
    def test_from_package_json(self, make_project):
        root = make_project({"package.json": {"name": "demo", "version": "2.0.0", "license": "MIT"}})
        info = read_project_info(root)
        assert (info.name, info.version, info.declared_license) == ("demo", "2.0.0", "MIT")

    def test_falls_back_to_directory_name(self, tmp_path):
        info = read_project_info(tmp_path)
        assert info.name == tmp_path.name
        assert info.declared_license is None


class TestNormalizeRepositoryUrl:
    def test_object_with_git_plus(self):
        repo = {"type": "git", "url": "git+https://github.com/lodash/lodash.git"}
        assert normalize_repository_url(repo) == "https://github.com/lodash/lodash"

    def test_ssh_form(self):
        assert normalize_repository_url("git@github.com:o/r.git") == "https://github.com/o/r"

    def test_git_protocol(self):
        assert normalize_repository_url("git://github.com/o/r.git") == "https://github.com/o/r"

    def test_shorthand(self):
        assert normalize_repository_url("o/r") == "https://github.com/o/r"
        assert normalize_repository_url("gitlab:o/r") == "https://gitlab.com/o/r"

    def test_missing(self):
        assert normalize_repository_url(None) is None
        assert normalize_repository_url({"type": "git"}) is None
