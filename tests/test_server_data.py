import pytest

from server_data import AudioConfiguration, ServerData, extract_version_quad


@pytest.mark.parametrize("version, quad", [
    ("7.1.431.-1", [7, 1, 431, -1]),
    ("3.23.0.74", [3, 23, 0, 74]),
    ("7.1", [7, 1, 0, 0]),
    ("6.0.0.0beta", [6, 0, 0, 0]),
    ("", [0, 0, 0, 0]),
    ("x.2", [0, 2, 0, 0]),
])
def test_extract_version_quad(version, quad):
    assert extract_version_quad(version) == quad


@pytest.mark.parametrize("version, sunshine", [
    ("7.1.431.-1", True),
    ("7.1.431.0", False),
    ("7.1", False),
])
def test_is_sunshine(version, sunshine):
    assert ServerData(address="host", app_version=version).is_sunshine() is sunshine


def test_from_address_defaults():
    server = ServerData.from_address("gaming-pc.local")
    assert server.address == "gaming-pc.local"
    assert server.http_port == 47989
    assert server.https_port == 0
    assert not server.paired
    assert server.current_game == 0


def test_from_address_with_port():
    server = ServerData.from_address(" 10.0.0.2:48000 ")
    assert server.address == "10.0.0.2"
    assert server.http_port == 48000


@pytest.mark.parametrize("address", ["", ":47989", "host:", "host:abc", "host:0", "host:65536"])
def test_from_address_invalid(address):
    with pytest.raises(ValueError):
        ServerData.from_address(address)


def test_supports_4k():
    assert not ServerData(address="host").supports_4k
    assert ServerData(address="host", codec_mode_support=1).supports_4k


def test_audio_configuration():
    assert AudioConfiguration.STEREO.surround_audio_info == 0x30002
    assert AudioConfiguration.SURROUND_51.surround_audio_info == 0xFC0006


def test_server_information():
    server = ServerData(address="host", app_version="7.1.431.-1", gfe_version="3.23.0.74",
                        codec_mode_support=259, rtsp_session_url="rtsp://host:48010")
    info = server.server_information()
    assert info.address == "host"
    assert info.app_version == "7.1.431.-1"
    assert info.gfe_version == "3.23.0.74"
    assert info.rtsp_session_url == "rtsp://host:48010"
    assert info.codec_mode_support == 259
