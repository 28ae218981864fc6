"""CLI tests (`spaider.cli`) using click.testing.CliRunner.
Cover `crawl`, `config`, `--version` and configuration error handling.
"""
import json
import types

import pytest
import spaider
import spaider.cli as cli_module
from click.testing import CliRunner
from spaider.cli import cli
from spaider.driver import CrawlStats
from spaider.logger import configure


@pytest.fixture(autouse=True)
def patch_harvest(monkeypatch):
    """Replace harvest with a fake that records its config and writes one document."""
    calls = []

    async def fake_harvest(cfg, stream):
        calls.append(cfg)
        stream.write(f"# {cfg.start_url}:\n\nbody\n\n")
        return CrawlStats(pages=1, emitted=1)

    monkeypatch.setattr(cli_module, "harvest", fake_harvest)
    return calls


@pytest.fixture(autouse=True)
def restore_logging():
    """Rebind the project logger to the real stderr once CliRunner has swapped it back."""
    yield
    configure()


def test_cli_module_is_not_shadowed_by_the_command():
    assert isinstance(cli_module, types.ModuleType)
    assert spaider.cli is cli_module
    assert spaider.main is cli


def test_version_option():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "spaider" in result.output


def test_crawl_to_stdout(patch_harvest):
    result = CliRunner().invoke(cli, ["crawl", "https://example.com/docs/"])
    assert result.exit_code == 0, result.output
    assert result.stdout == "# https://example.com/docs/:\n\nbody\n\n"
    assert patch_harvest[0].synchronous is False


def test_crawl_options_reach_config(patch_harvest):
    result = CliRunner().invoke(
        cli,
        [
            "crawl", "https://example.com/docs/",
            "--allow", "docs", "--allow", "guide",
            "--deny", "/old/",
            "--ext", "html", "--ext", "",
            "--max-depth", "2",
            "--sync",
        ],
    )
    assert result.exit_code == 0, result.output
    cfg = patch_harvest[0]
    assert cfg.allow == ["docs", "guide"]
    assert cfg.deny == ["/old/"]
    assert cfg.extensions == [".html", ""]
    assert cfg.max_depth == 2
    assert cfg.synchronous is True


def test_crawl_to_file(tmp_path):
    out = tmp_path / "harvest.md"
    result = CliRunner().invoke(cli, ["crawl", "https://example.com/", "--output", str(out)])
    assert result.exit_code == 0, result.output
    assert out.read_text(encoding="utf-8") == "# https://example.com/:\n\nbody\n\n"


def test_config_file_with_override(tmp_path):
    cfg_file = tmp_path / "spaider.yaml"
    cfg_file.write_text("start_url: https://ignored.example/\nmax_depth: 4\ndeny: ['/old/']\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["config", "https://example.com/", "--config", str(cfg_file)])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["start_url"] == "https://example.com/"
    assert data["max_depth"] == 4
    assert data["deny"] == ["/old/"]


@pytest.mark.parametrize(
    "args",
    [
        ["crawl", "https://example.com/", "--deny", "([bad"],
        ["crawl", "https://example.com/", "--allow", "*oops"],
        ["crawl", "not-a-url"],
    ],
)
def test_configuration_errors_are_fatal(patch_harvest, args):
    result = CliRunner().invoke(cli, args)
    assert result.exit_code == 1
    assert "Configuration error" in result.output
    assert patch_harvest == []


def test_missing_config_file(tmp_path):
    result = CliRunner().invoke(cli, ["crawl", "https://example.com/", "--config", str(tmp_path / "absent.yaml")])
    assert result.exit_code != 0
