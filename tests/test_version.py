"""Tests for release version resolution."""

from importlib import metadata

import pytest
from packaging.version import Version

import cageboard
from cageboard import _version as version_module


def _not_installed(name):
    raise metadata.PackageNotFoundError(name)


@pytest.fixture
def changelog(tmp_path, monkeypatch):
    path = tmp_path / "CHANGELOG.md"
    monkeypatch.setattr(version_module, "_changelog_candidates", lambda: iter([path]))
    monkeypatch.delenv("PYTHON_SEMANTIC_RELEASE_VERSION", raising=False)
    return path


def test_package_version_has_three_release_components():
    assert len(Version(cageboard.__version__).release) == 3


def test_release_environment_variable_wins(monkeypatch):
    monkeypatch.setenv("PYTHON_SEMANTIC_RELEASE_VERSION", "9.8.7")

    assert version_module._raw_version() == "9.8.7"


def test_changelog_reports_newest_release_heading(changelog):
    changelog.write_text(
        "# Changelog\n\n## Unreleased\n\n## v0.4.1 (2026-09-30)\n\n## v0.4.0\n",
        encoding="utf-8",
    )

    assert version_module._changelog_version() == "0.4.1"


def test_uninstalled_checkout_falls_back_to_changelog(changelog, monkeypatch):
    changelog.write_text("## v1.2.3\n", encoding="utf-8")
    monkeypatch.setattr(version_module.metadata, "version", _not_installed)

    assert version_module._raw_version() == "1.2.3"


def test_missing_changelog_and_distribution_raises(changelog, monkeypatch):
    monkeypatch.setattr(version_module.metadata, "version", _not_installed)

    assert version_module._changelog_version() is None
    with pytest.raises(RuntimeError, match="Unable to determine"):
        version_module._raw_version()


@pytest.mark.parametrize("raw", ["bogus", "1.2", "1.2.3.4"])
def test_invalid_versions_are_rejected(raw):
    with pytest.raises(RuntimeError):
        version_module._validated(raw)


def test_valid_version_is_returned_unchanged():
    assert version_module._validated("0.10.2") == "0.10.2"
