"""
Tests for CLI commands — exit codes, JSON output, catalog tools.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from caskctl.core.observability.logging_config import ENV_LEVEL
from caskctl.main import cli


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A caskctl.yml next to an (initially empty) Casks directory."""
    (tmp_path / "Casks").mkdir(exist_ok=True)
    config = tmp_path / "caskctl.yml"
    config.write_text("catalog_dirs: [Casks]\nstate_dir: .state\n")
    return config


def run(config: Path, *args: str):
    # Keep log records off the captured output so JSON parses cleanly
    return CliRunner().invoke(
        cli, ["--config", str(config), *args], env={ENV_LEVEL: "CRITICAL"}
    )


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "cask manifests" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_config_exits_2(self, tmp_path: Path):
        result = run(tmp_path / "nope.yml", "status")
        assert result.exit_code == 2


class TestInstallCommand:
    def test_install_and_status(self, project: Path, make_cask, artifact: Path):
        make_cask(url=artifact.as_uri())
        result = run(project, "install", "font-sf-arabic", "--mock", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["status"] == "installed"
        assert data["unverified"] is True

        status = json.loads(run(project, "status", "--json").output)
        assert status["packages"][0]["identifier"] == "font-sf-arabic"
        assert status["packages"][0]["status"] == "installed"

    def test_text_output_flags_unverified(self, project: Path, make_cask, artifact: Path):
        make_cask(url=artifact.as_uri())
        result = CliRunner().invoke(
            cli, ["--config", str(project), "install", "font-sf-arabic", "--mock"]
        )
        assert result.exit_code == 0
        assert "not verified" in result.output
        assert "Installed font-sf-arabic 18.0d7e1" in result.output

    def test_unknown_package_exits_14(self, project: Path):
        result = run(project, "install", "font-sf-hebrew", "--mock", "--json")
        assert result.exit_code == 14
        assert json.loads(result.output)["error"]["kind"] == "UnknownPackage"

    def test_checksum_mismatch_exits_21(self, project: Path, make_cask, artifact: Path):
        make_cask(url=artifact.as_uri(), sha256="0" * 64)
        result = run(project, "install", "font-sf-arabic", "--mock", "--json")
        assert result.exit_code == 21
        error = json.loads(result.output)["error"]
        assert error["identifier"] == "font-sf-arabic"
        assert error["detail"]["expected"] == "0" * 64

    def test_missing_artifact_exits_22(self, project: Path, make_cask, tmp_path: Path):
        make_cask(url=(tmp_path / "gone.dmg").as_uri())
        assert run(project, "install", "font-sf-arabic", "--mock").exit_code == 22

    def test_malformed_catalog_exits_10(self, project: Path, make_cask):
        make_cask(sha256="nothex")
        assert run(project, "install", "font-sf-arabic", "--mock").exit_code == 10


class TestUninstallCommand:
    def test_without_record_exits_31(self, project: Path, make_cask, artifact: Path):
        make_cask(url=artifact.as_uri())
        result = run(project, "uninstall", "font-sf-arabic", "--mock", "--json")
        assert result.exit_code == 31
        assert json.loads(result.output)["error"]["kind"] == "UninstallRecordMissing"

    def test_install_then_uninstall(self, project: Path, make_cask, artifact: Path):
        make_cask(url=artifact.as_uri())
        assert run(project, "install", "font-sf-arabic", "--mock").exit_code == 0
        result = run(project, "uninstall", "font-sf-arabic", "--mock", "--json")
        assert result.exit_code == 0
        assert json.loads(result.output)["version"] == "18.0d7e1"

        history = json.loads(run(project, "history", "--json").output)
        assert [(e["operation_type"], e["status"]) for e in history] == [
            ("install", "ok"),
            ("uninstall", "ok"),
        ]
        assert json.loads(run(project, "history", "-n", "0", "--json").output) == []
        assert run(project, "history", "-n", "-1").exit_code == 2


class TestInfoCommand:
    def test_info_json(self, project: Path, make_cask):
        make_cask()
        result = run(project, "info", "font-sf-arabic", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["descriptor"]["canonical_name"] == "San Francisco Arabic"
        assert data["descriptor"]["checksum"] == ":no_check"
        assert data["state"]["status"] == "uninstalled"

    def test_info_text(self, project: Path, make_cask):
        make_cask()
        result = run(project, "info", "font-sf-arabic")
        assert result.exit_code == 0
        assert "San Francisco Arabic, SF Arabic" in result.output
        assert "com.apple.pkg.SFArabicFonts" in result.output


class TestCatalogCommands:
    def test_list(self, project: Path, make_cask):
        make_cask("font-sf-arabic")
        make_cask("font-sf-hebrew")
        data = json.loads(run(project, "catalog", "list", "--json").output)
        assert [d["identifier"] for d in data["descriptors"]] == ["font-sf-arabic", "font-sf-hebrew"]

    def test_dump_is_byte_identical(self, project: Path, fixtures_dir: Path):
        source = fixtures_dir / "Casks" / "font-sf-arabic.rb"
        (project.parent / "Casks" / source.name).write_bytes(source.read_bytes())
        result = run(project, "catalog", "dump", "font-sf-arabic")
        assert result.exit_code == 0
        assert result.output == source.read_text()

    def test_check_valid(self, project: Path, make_cask):
        make_cask()
        result = run(project, "catalog", "check", "--json")
        assert result.exit_code == 0
        assert json.loads(result.output)["loaded"] == ["font-sf-arabic"]

    def test_check_reports_all_errors(self, project: Path, make_cask):
        make_cask("font-a", extra="livecheck\n")
        make_cask("font-b", extra='version "2"\n')
        result = run(project, "catalog", "check", "--json")
        assert result.exit_code == 11
        kinds = [e["kind"] for e in json.loads(result.output)["errors"]]
        assert kinds == ["UnsupportedDirective", "DuplicateField"]
