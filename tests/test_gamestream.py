from pathlib import Path

import pytest

import gamestream
from gamestream import arguments_parse, main

HOST = "192.168.1.20"


@pytest.fixture
def config_path(tmp_path, client_key_dir, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text(f'[client]\nunique_id = "0123456789abcdef"\nkey_dir = "{client_key_dir.as_posix()}"\n')
    monkeypatch.setenv("GAMESTREAM_CONFIG", str(path))
    return path


@pytest.fixture
def host(fake_host, monkeypatch):
    monkeypatch.setattr(gamestream, "HttpClient", lambda timeouts: fake_host)
    return fake_host


def test_arguments_launch():
    args = arguments_parse(["--host", HOST, "launch", "42", "--height", "1080", "--width", "1920",
                            "--surround", "--sops", "--gamepad-mask", "3"])

    assert args.command == "launch"
    assert args.host == HOST
    assert args.app_id == 42
    assert (args.width, args.height, args.fps) == (1920, 1080, 60)
    assert args.surround and args.sops and not args.local_audio
    assert args.gamepad_mask == 3


def test_arguments_boxart():
    args = arguments_parse(["boxart", "7", "art.png"])

    assert args.host is None
    assert args.app_id == 7
    assert args.output == Path("art.png")


def test_arguments_require_command():
    with pytest.raises(SystemExit):
        arguments_parse([])


async def test_status(config_path, host):
    assert await main(arguments_parse(["--host", HOST, "status"])) == 0

    assert host.initialized_with is not None
    assert host.paths() == ["/serverinfo", "/serverinfo"]
    assert host.closed


async def test_pair_with_pin(config_path, host):
    assert await main(arguments_parse(["--host", HOST, "pair", "--pin", "1234"])) == 0

    assert host.count("/pair") == 5
    assert host.pair_status == "1"


async def test_list_uses_configured_address(tmp_path, config_path, host):
    config_path.write_text(config_path.read_text() + f'\n[server]\naddress = "{HOST}:47989"\n')

    assert await main(arguments_parse(["list"])) == 0

    assert host.paths()[-1] == "/applist"


async def test_boxart_written(tmp_path, config_path, host):
    output = tmp_path / "art.png"

    assert await main(arguments_parse(["--host", HOST, "boxart", "1", str(output)])) == 0

    assert output.read_bytes() == host.boxart


async def test_launch_and_quit(config_path, host):
    assert await main(arguments_parse(["--host", HOST, "launch", "881448767"])) == 0
    assert host.current_game == 881448767

    assert await main(arguments_parse(["--host", HOST, "quit"])) == 0
    assert host.current_game == 0


async def test_protocol_failure_exit_code(config_path, host):
    host.codec_mode_support = 0

    assert await main(arguments_parse(["--host", HOST, "launch", "1", "--width", "3840", "--height", "2160"])) == 1
    assert "/launch" not in host.paths()


async def test_missing_host(config_path, host):
    assert await main(arguments_parse(["status"])) == 2
    assert host.requests == []


async def test_missing_config(tmp_path, monkeypatch):
    monkeypatch.setenv("GAMESTREAM_CONFIG", str(tmp_path / "absent.toml"))

    assert await main(arguments_parse(["--host", HOST, "status"])) == 1


def test_arguments_verbose():
    assert arguments_parse(["-v", "quit"]).verbose
    assert not arguments_parse(["quit"]).verbose
