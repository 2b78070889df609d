from pathlib import Path

import pytest

from coinfolio.cli.main import (
    DEFAULT_DATA_DIR,
    EXIT_FAULT,
    EXIT_OK,
    EXIT_USAGE,
    build_parser,
    load_config,
    main,
)
from coinfolio.config.config_loader import ConfigLoader


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("COINFOLIO_BACKEND", "COINFOLIO_LOCAL__PATH", "COINFOLIO_CASH_RESERVE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cli(tmp_path: Path, capsys):
    """Run the CLI against a fresh data directory; returns (exit_code, stdout)."""

    def run(*argv: str) -> tuple[int, str]:
        code = main(["--set", f"local.path={tmp_path}", *argv])
        return code, capsys.readouterr().out

    return run


def _added_id(output: str) -> str:
    first = output.splitlines()[0]
    assert first.startswith("Added ")
    return first.split()[1]


def test_build_parser():
    p = build_parser()
    assert p.prog == "coinfolio"
    args = p.parse_args(
        ["--config", "conf.toml", "--set", "KEY=VALUE", "list", "--sold", "--sort", "roi", "--desc"]
    )
    assert args.command == "list"
    assert args.config == Path("conf.toml")
    assert args.config_overrides == ["KEY=VALUE"]
    assert args.sold is True
    assert args.sort == "roi"
    assert args.desc is True


def test_local_path_defaults_to_data_dir():
    args = build_parser().parse_args(["list"])
    config = load_config(args, ConfigLoader(environ={}))
    assert config.local.path == DEFAULT_DATA_DIR


def test_add_sell_summary_delete(cli):
    code, out = cli("add", "--name", "1921 Morgan", "--price", "100", "--value", "150")
    assert code == EXIT_OK
    coin_id = _added_id(out)

    code, out = cli("list", "--active")
    assert code == EXIT_OK
    assert coin_id in out
    assert "+50.00%" in out

    code, out = cli("sell", coin_id, "--price", "180", "--date", "2024-03-01")
    assert code == EXIT_OK
    assert "$180.00" in out

    code, out = cli("summary", "--cash", "50000")
    assert code == EXIT_OK
    assert "$50,080.00" in out
    assert "Sold coins profit (1)" in out

    code, out = cli("sold")
    assert "2024-03-01" in out
    assert "+80.00%" in out

    code, out = cli("unsell", coin_id)
    assert code == EXIT_OK
    assert "held" in out

    code, out = cli("delete", coin_id)
    assert code == EXIT_OK
    code, out = cli("list")
    assert "No coins found." in out


def test_update_derives_roi(cli):
    _, out = cli("add", "--name", "Peace Dollar", "--price", "40", "--value", "40")
    coin_id = _added_id(out)

    code, out = cli("update", coin_id, "--value", "60", "--grade", "AU-58")
    assert code == EXIT_OK
    assert "+50.00%" in out


def test_list_search_and_sort(cli):
    cli("add", "--name", "Buffalo Nickel", "--price", "5", "--value", "6")
    cli("add", "--name", "1921 Morgan", "--price", "100", "--value", "150")

    _, out = cli("list", "--search", "morgan")
    assert "1921 Morgan" in out
    assert "Buffalo" not in out

    _, out = cli("list", "--sort", "current_value", "--desc")
    lines = out.splitlines()
    assert "1921 Morgan" in lines[0]
    assert "Buffalo Nickel" in lines[1]


def test_unknown_coin_is_a_fault(cli):
    assert cli("sell", "missing", "--price", "1")[0] == EXIT_FAULT
    assert cli("update", "missing", "--value", "1")[0] == EXIT_FAULT


def test_delete_unknown_coin_succeeds(cli):
    assert cli("delete", "missing")[0] == EXIT_OK


def test_invalid_input_is_usage_error(cli):
    assert cli("add", "--name", "x", "--price", "-1", "--value", "1")[0] == EXIT_USAGE
    assert cli("summary", "--cash", "-1")[0] == EXIT_USAGE


def test_invalid_config_is_usage_error(tmp_path: Path):
    assert main(["--set", "local.poll_interval_s=0", "list"]) == EXIT_USAGE
    assert main(["--config", str(tmp_path / "absent.toml"), "list"]) == EXIT_USAGE


def test_watch_prints_snapshot(cli):
    cli("add", "--name", "1921 Morgan", "--price", "100", "--value", "150")
    code, out = cli("--set", "local.poll_interval_s=0.05", "watch", "--cash", "0", "--seconds", "0.2")
    assert code == EXIT_OK
    assert "$150.00" in out
