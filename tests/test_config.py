from pathlib import Path

import pytest

from ic_testnet_kit import config
from ic_testnet_kit import errors


def test_defaults_follow_makefile():
    testnet = config.load(environ={})

    assert testnet.base_dir == Path("tmp").absolute()
    assert testnet.log_dir == Path("logs").absolute()
    assert testnet.replica_version == "0.9.0"
    assert testnet.replica_binary == Path("ic/target/debug/replica")
    assert testnet.profile == config.Profile.DEFAULT
    assert testnet.addresses == config.DEFAULT_LOCAL_ADDRESSES
    assert testnet.resolved_generator_command() == ["cargo", "run", "--features", "default", "--"]


def test_file_environment_and_overrides_are_layered(tmp_path):
    config_path = tmp_path.joinpath("testnet.toml")
    config_path.write_text(
        'base_dir = "/tmp/from-file"\n'
        'replica_version = "1.0.0"\n'
        'profile = "local"\n'
        'addresses = ["127.0.1.1:8080", "127.0.2.1:8080"]\n'
    )

    testnet = config.load(
        config_path,
        environ={"BASE_DIR": "/tmp/from-env", "ADDRESSES": "10.0.0.1:8080 10.0.0.2:8080 10.0.0.3:8080"},
        overrides={"base_dir": Path("/tmp/from-flag"), "replica_version": None},
    )

    assert testnet.base_dir == Path("/tmp/from-flag")
    assert testnet.replica_version == "1.0.0"
    assert testnet.profile == config.Profile.LOCAL
    assert testnet.addresses == ["10.0.0.1:8080", "10.0.0.2:8080", "10.0.0.3:8080"]
    assert testnet.resolved_generator_command() == ["cargo", "run", "--features", "local", "--"]


def test_config_file_found_in_xdg_config_dir(isolated_xdg):
    config_dir = isolated_xdg.joinpath("ic-testnet-kit")
    config_dir.mkdir(parents=True)
    config_dir.joinpath("testnet.toml").write_text('replica_version = "2.0.0"\n')

    assert config.find_config_file() == config_dir.joinpath("testnet.toml")
    assert config.load(environ={}).replica_version == "2.0.0"


def test_unknown_key_is_rejected(tmp_path):
    config_path = tmp_path.joinpath("testnet.toml")
    config_path.write_text('replica_versoin = "1.0.0"\n')

    with pytest.raises(errors.InvalidConfig, match="replica_versoin"):
        config.load(config_path, environ={})


def test_unknown_profile_is_rejected():
    with pytest.raises(errors.InvalidConfig, match="Unknown profile"):
        config.load(environ={"ENV": "production"})


def test_validate_rejects_empty_address_list(tmp_path):
    testnet = config.TestnetConfig(tmp_path, [])

    with pytest.raises(errors.InvalidConfig, match="At least one"):
        testnet.validate()


def test_validate_rejects_shared_address(tmp_path):
    testnet = config.TestnetConfig(tmp_path, ["127.0.0.1:8080", "127.0.0.1:8080"])

    with pytest.raises(errors.InvalidConfig):
        testnet.validate()


def test_validate_rejects_base_dir_below_a_file(tmp_path):
    blocker = tmp_path.joinpath("file")
    blocker.write_text("")
    testnet = config.TestnetConfig(blocker.joinpath("testnet"), ["127.0.0.1:8080"])

    with pytest.raises(errors.InvalidConfig, match="not a directory"):
        testnet.validate()


def test_validate_accepts_missing_base_dir(tmp_path):
    config.TestnetConfig(tmp_path.joinpath("a", "b"), ["127.0.0.1:8080"]).validate()


def test_generator_command_string_keeps_quoted_arguments(tmp_path):
    config_path = tmp_path.joinpath("testnet.toml")
    config_path.write_text("generator_command = \"cargo run --features '{profile}' -- --note 'two words'\"\n")

    testnet = config.load(config_path, environ={})

    assert testnet.resolved_generator_command() == ["cargo", "run", "--features", "default", "--", "--note", "two words"]
