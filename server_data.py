"""
GameStreamClient
Copyright (C) 2024 thiccaxe

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import dataclasses
import enum
from typing import List, Optional

DEFAULT_HTTP_PORT = 47989
DEFAULT_HTTPS_PORT = 47984


def extract_version_quad(version: str) -> List[int]:
    """
    split "a.b.c.d" into four ints. each component is parsed from its leading
    digits (with sign), missing components are 0. sunshine reports a negative
    fourth component.
    """
    parts = (version or "").split(".")
    quad = []
    for i in range(4):
        component = parts[i] if i < len(parts) else ""
        digits = ""
        for position, character in enumerate(component.strip()):
            if character.isdigit() or (position == 0 and character in "+-"):
                digits += character
            else:
                break
        try:
            quad.append(int(digits))
        except ValueError:
            quad.append(0)
    return quad


class AudioConfiguration(enum.Enum):
    STEREO = "stereo"
    SURROUND_51 = "5.1"

    @property
    def channel_count(self) -> int:
        return 2 if self is AudioConfiguration.STEREO else 6

    @property
    def channel_mask(self) -> int:
        return 0x3 if self is AudioConfiguration.STEREO else 0xFC

    @property
    def surround_audio_info(self) -> int:
        return (self.channel_mask << 16) | self.channel_count


@dataclasses.dataclass(frozen=True)
class AppEntry:
    id: int
    name: str
    hdr_supported: bool = False


@dataclasses.dataclass
class StreamConfiguration:
    width: int
    height: int
    fps: int
    audio_configuration: AudioConfiguration = AudioConfiguration.STEREO
    remote_input_aes_key: bytes = bytes(16)  # replaced by start_app


@dataclasses.dataclass
class ServerInformation:
    """
    what the streaming library needs to know about the host, built at the boundary
    """
    address: str
    app_version: str
    gfe_version: str
    rtsp_session_url: Optional[str]
    codec_mode_support: int


@dataclasses.dataclass
class ServerData:
    address: str
    http_port: int = DEFAULT_HTTP_PORT
    https_port: int = 0  # learned from serverinfo
    paired: bool = False
    current_game: int = 0  # 0 = idle
    app_version: str = ""
    server_major_version: int = 0
    gfe_version: str = ""
    gs_version: str = ""
    hostname: str = ""
    mac: str = ""
    gpu_type: str = ""
    codec_mode_support: int = 0
    rtsp_session_url: Optional[str] = None

    @property
    def supports_4k(self) -> bool:
        return self.codec_mode_support != 0

    def is_sunshine(self) -> bool:
        return extract_version_quad(self.app_version)[3] < 0

    def server_information(self) -> ServerInformation:
        return ServerInformation(
            address=self.address,
            app_version=self.app_version,
            gfe_version=self.gfe_version,
            rtsp_session_url=self.rtsp_session_url,
            codec_mode_support=self.codec_mode_support,
        )

    @staticmethod
    def from_address(address: str) -> "ServerData":
        """
        host or host:port, port defaults to 47989
        """
        host, separator, port = address.strip().partition(":")
        if not host:
            raise ValueError(f"no host in address {address!r}")
        http_port = DEFAULT_HTTP_PORT
        if separator:
            http_port = int(port)
            if not 0 < http_port < 65536:
                raise ValueError(f"port {http_port} out of range")
        return ServerData(address=host, http_port=http_port)
