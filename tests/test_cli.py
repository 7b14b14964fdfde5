
import pytest
import toml

from ic_testnet_kit import cli
from ic_testnet_kit.supervisor import Supervisor
from ic_testnet_kit import config

from .conftest import wait_for


@pytest.fixture
def cli_args(tmp_path, fake_generator, fake_replica):
    config_path = tmp_path.joinpath("testnet.toml")
    config_path.write_text('generator_command = ["%s"]\n' % fake_generator)
    return [
        "--config", str(config_path),
        "--base-dir", str(tmp_path.joinpath("testnet")),
        "--log-dir", str(tmp_path.joinpath("logs")),
        "--replica-binary", str(fake_replica),
        "--addresses", "127.0.1.1:8080 127.0.2.1:8080",
    ]


@pytest.fixture
def cleanup(cli_args):
    yield
    cli.main(cli_args + ["stop"])


def test_generate_then_start_then_teardown(cli_args, tmp_path, capsys, cleanup):
    base = tmp_path.joinpath("testnet")

    assert cli.main(cli_args + ["generate"]) == 0
    assert base.joinpath("state-100").is_dir()
    assert base.joinpath("state-101").is_dir()

    assert cli.main(cli_args + ["start"]) == 0
    assert cli.main(cli_args + ["status"]) == 0
    assert capsys.readouterr().out.splitlines() == ["100\trunning", "101\trunning"]

    assert cli.main(cli_args + ["teardown"]) == 0
    assert not base.exists()
    assert not tmp_path.joinpath("logs").exists()


def test_start_single_node(cli_args, tmp_path, cleanup):
    assert cli.main(cli_args + ["generate"]) == 0
    assert cli.main(cli_args + ["start", "101"]) == 0

    log_file = tmp_path.joinpath("logs", "node-101.log")
    assert wait_for(lambda: "ic-101.json5" in log_file.read_text())
    assert not tmp_path.joinpath("logs", "node-100.log").exists()


def test_start_unknown_node_fails(cli_args, cleanup):
    assert cli.main(cli_args + ["generate"]) == 0
    assert cli.main(cli_args + ["start", "999"]) == 1


def test_start_without_generate_fails(cli_args):
    assert cli.main(cli_args + ["start"]) == 1


def test_run_restarts_from_scratch(cli_args, tmp_path, cleanup):
    assert cli.main(cli_args + ["run"]) == 0
    first = Supervisor(config.load(tmp_path.joinpath("testnet.toml"), environ={}, overrides={"base_dir": tmp_path.joinpath("testnet")}))
    first_pids = {running.pid for running in first.processes.values()}

    assert cli.main(cli_args + ["run"]) == 0
    second = Supervisor(config.load(tmp_path.joinpath("testnet.toml"), environ={}, overrides={"base_dir": tmp_path.joinpath("testnet")}))

    assert len(first_pids) == 2
    assert sorted(second.processes) == [100, 101]
    assert first_pids.isdisjoint(running.pid for running in second.processes.values())


def test_kill_alias_and_clean(cli_args, tmp_path):
    assert cli.main(cli_args + ["run"]) == 0
    assert cli.main(cli_args + ["kill"]) == 0
    assert not tmp_path.joinpath("testnet", "processes.toml").exists()

    assert cli.main(cli_args + ["clean"]) == 0
    assert not tmp_path.joinpath("testnet").exists()


def test_invalid_address_fails(cli_args):
    assert cli.main(cli_args + ["--addresses", "127.0.0.1", "generate"]) == 1


def test_nodes_option_allocates_ports(cli_args, tmp_path):
    args = cli_args[:-2] + ["--nodes", "3", "generate"]

    assert cli.main(args) == 0
    configs = sorted(path.name for path in tmp_path.joinpath("testnet").glob("ic-*.json5"))
    assert configs == ["ic-100.json5", "ic-101.json5", "ic-102.json5"]
    assert "127.0.0.1:60000" in tmp_path.joinpath("testnet", "ic-100.json5").read_text()


def test_start_launches_every_generated_node(cli_args, tmp_path, capsys, cleanup):
    three = ["--addresses", "127.0.1.1:8080 127.0.2.1:8080 127.0.3.1:8080"]
    without_addresses = cli_args[:-2]

    assert cli.main(cli_args + three + ["generate"]) == 0
    assert cli.main(without_addresses + ["start"]) == 0
    assert cli.main(without_addresses + ["status"]) == 0

    assert capsys.readouterr().out.splitlines() == ["100\trunning", "101\trunning", "102\trunning"]
    table = toml.loads(tmp_path.joinpath("testnet", "processes.toml").read_text())
    assert [table["nodes"][node_id]["address"] for node_id in ("100", "101", "102")] == ["127.0.1.1:8080", "127.0.2.1:8080", "127.0.3.1:8080"]


def _is_running(pid):
    try:
        with open("/proc/%d/stat" % pid) as stat_file:
            state = stat_file.read().rsplit(")", 1)[1].split()[0]
    except FileNotFoundError:
        return False
    # Zombies are children of the test process nobody reaped yet
    return state != "Z"


def test_clean_leaves_no_node_running(cli_args, tmp_path):
    assert cli.main(cli_args + ["run"]) == 0
    table = toml.loads(tmp_path.joinpath("testnet", "processes.toml").read_text())
    pids = [entry["pid"] for entry in table["nodes"].values()]

    assert cli.main(cli_args + ["clean"]) == 0
    assert cli.main(cli_args + ["stop"]) == 0

    assert len(pids) == 2
    for pid in pids:
        assert not _is_running(pid)


def test_corrupt_process_table_fails_cleanly(cli_args, tmp_path):
    base = tmp_path.joinpath("testnet")
    base.mkdir()
    base.joinpath("processes.toml").write_text("[nodes\n")

    assert cli.main(cli_args + ["stop"]) == 1
