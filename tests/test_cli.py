"""
CLI (datapack/cli/__main__.py).

Drives the click commands through CliRunner.
"""

import json

import pytest
from click.testing import CliRunner

from conftest import write_tree

from datapack.cli.__main__ import cli
from datapack.reader import ArchiveReader


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    write_tree(tmp_path / "src", {
        "pkg/__init__.py": "",
        "pkg/util.py": "def double(x):\n    return x * 2\n",
    })
    return tmp_path


@pytest.fixture
def packed(runner, project):
    result = runner.invoke(cli, ["pack", "pkg.util", "-I", "src", "-o", "app.py"])
    assert result.exit_code == 0, result.output
    return project / "app.py"


# ============================================================================
# pack
# ============================================================================

class TestPack:

    def test_writes_output(self, runner, packed):
        reader = ArchiveReader.from_script(packed)
        assert reader.names() == ["pkg/__init__.py", "pkg/util.py"]

    def test_reports_success(self, runner, project):
        result = runner.invoke(cli, ["pack", "pkg.util", "-I", "src", "-o", "out.py"])
        assert result.exit_code == 0
        assert "Packed 2 module(s) into out.py" in result.output

    def test_stdout(self, runner, project):
        result = runner.invoke(cli, ["pack", "pkg.util", "-I", "src", "--no-parents"])
        assert result.exit_code == 0
        assert "### pkg/util.py ###" in result.stdout
        assert "pkg/__init__.py" not in result.stdout

    def test_src(self, runner, project):
        (project / "helpers.py").write_text("X = 1\n")
        result = runner.invoke(cli, ["pack", "--src", "app.helpers=helpers.py", "-o", "app.py"])
        assert result.exit_code == 0, result.output
        reader = ArchiveReader.from_script(project / "app.py")
        assert reader.lookup("app/helpers.py").text == "X = 1\n"

    def test_src_requires_name_and_path(self, runner, project):
        result = runner.invoke(cli, ["pack", "--src", "broken"])
        assert result.exit_code == 2
        assert "NAME=PATH" in result.output

    def test_modules_and_src_conflict(self, runner, project):
        (project / "helpers.py").write_text("X = 1\n")
        result = runner.invoke(cli, ["pack", "pkg.util", "--src", "h=helpers.py"])
        assert result.exit_code == 2

    def test_nothing_to_pack(self, runner, project):
        result = runner.invoke(cli, ["pack"])
        assert result.exit_code == 2
        assert "no modules to pack" in result.output

    def test_missing_module(self, runner, project):
        result = runner.invoke(cli, ["pack", "pkg.missing", "-I", "src"])
        assert result.exit_code == 1
        assert "Can't find module 'pkg.missing'" in result.output

    def test_refuses_overwrite(self, runner, packed):
        before = packed.read_bytes()
        result = runner.invoke(cli, ["pack", "pkg.util", "-I", "src", "-o", "app.py"])
        assert result.exit_code == 1
        assert "OUTPUT_EXISTS" in result.output
        assert packed.read_bytes() == before

    def test_overwrite(self, runner, packed):
        result = runner.invoke(
            cli, ["pack", "pkg.util", "-I", "src", "-o", "app.py", "--overwrite", "--no-parents"]
        )
        assert result.exit_code == 0, result.output
        assert ArchiveReader.from_script(packed).names() == ["pkg/util.py"]

    def test_config_file(self, runner, project):
        (project / "datapack.yaml").write_text(
            "module_names: [pkg.util]\nsearch_path: [src]\noutput: cfg.py\n"
        )
        result = runner.invoke(cli, ["pack"])
        assert result.exit_code == 0, result.output
        assert (project / "cfg.py").exists()

    def test_json_output(self, runner, project):
        result = runner.invoke(
            cli, ["pack", "pkg.util", "-I", "src", "-o", "app.py", "--json-output"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["status"] == 200
        assert data["message"] == "Written to app.py"
        assert [e["name"] for e in data["entries"]] == ["pkg/__init__.py", "pkg/util.py"]


# ============================================================================
# inspect / show
# ============================================================================

class TestInspect:

    def test_table(self, runner, packed):
        result = runner.invoke(cli, ["inspect", str(packed)])
        assert result.exit_code == 0, result.output
        assert "pkg/util.py" in result.output
        assert "First line" in result.output

    def test_json(self, runner, packed):
        result = runner.invoke(cli, ["inspect", str(packed), "--json-output"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        reader = ArchiveReader.from_script(packed)
        assert data["archive_offset"] == reader.offset
        assert data["entries"][1]["name"] == "pkg/util.py"
        assert data["entries"][1]["first_line"] == reader.first_line("pkg/util.py")

    def test_not_a_datapack(self, runner, project):
        (project / "plain.py").write_text("print('hi')\n")
        result = runner.invoke(cli, ["inspect", "plain.py"])
        assert result.exit_code == 1
        assert "MALFORMED_ARCHIVE" in result.output


class TestShow:

    @pytest.mark.parametrize("name", ["pkg.util", "pkg/util.py"])
    def test_show(self, runner, packed, name):
        result = runner.invoke(cli, ["show", str(packed), name])
        assert result.exit_code == 0, result.output
        assert result.stdout == "def double(x):\n    return x * 2\n"

    def test_show_package(self, runner, packed):
        result = runner.invoke(cli, ["show", str(packed), "pkg"])
        assert result.exit_code == 0
        assert result.stdout == ""

    def test_show_missing(self, runner, packed):
        result = runner.invoke(cli, ["show", str(packed), "pkg.other"])
        assert result.exit_code == 1
        assert "'pkg.other' is not packed into" in result.output
