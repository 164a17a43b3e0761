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
import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from aiofiles import open as aio_open

from config import Config, ConfigurationLoadError
from crypto_manager import CryptoManager, CryptoError
from gamestream_client import GameStreamClient, generate_pin
from logger import setup_logging, print
from server_data import AudioConfiguration, ServerData, StreamConfiguration
from wire.errors import GameStreamError, gs_error
from wire.http_client import HttpClient


class GameStream:

    def __init__(self, config: Config):
        self._config = config
        self._crypto = CryptoManager(config.key_dir)
        self._http = HttpClient(config.timeouts)
        self._client = GameStreamClient.from_config(config, self._crypto, self._http)
        self._commands = {
            "status": self._command_status,
            "pair": self._command_pair,
            "unpair": self._command_unpair,
            "list": self._command_list,
            "boxart": self._command_boxart,
            "launch": self._command_launch,
            "quit": self._command_quit,
        }

    async def run(self, args: argparse.Namespace):
        async with self._http:
            logging.info(f"Connecting to {args.host}")
            server = await self._client.init(args.host)
            await self._commands[args.command](server, args)

    async def _command_status(self, server: ServerData, args):
        kind = "Sunshine" if server.is_sunshine() else "GeForce Experience"
        print(f"[host]{server.hostname}[/host] ({server.address}) - {kind} {server.app_version}")
        print(f"  paired: {server.paired}, running app: {server.current_game or 'none'}")
        print(f"  gpu: {server.gpu_type}, mac: {server.mac}, 4K: {server.supports_4k}")

    async def _command_pair(self, server: ServerData, args):
        if server.paired:
            print(f"Already paired with {server.hostname}")
            return
        pin = args.pin or generate_pin()
        print(f"Enter PIN [pin]{pin}[/pin] on [host]{server.hostname or server.address}[/host]")
        await self._client.pair(server, pin)
        print(f"Paired with {server.hostname or server.address}")

    async def _command_unpair(self, server: ServerData, args):
        await self._client.unpair(server)
        print(f"Unpaired from {server.hostname or server.address}")

    async def _command_list(self, server: ServerData, args):
        for app in await self._client.applist(server):
            running = " (running)" if app.id == server.current_game else ""
            hdr = " [HDR]" if app.hdr_supported else ""
            print(f"{app.id:>10}  {app.name}{hdr}{running}")

    async def _command_boxart(self, server: ServerData, args):
        data = await self._client.app_boxart(server, args.app_id)
        async with aio_open(args.output, "wb") as output_file:
            await output_file.write(data)
        print(f"Wrote {len(data)} bytes to {args.output}")

    async def _command_launch(self, server: ServerData, args):
        stream_config = StreamConfiguration(
            width=args.width,
            height=args.height,
            fps=args.fps,
            audio_configuration=AudioConfiguration.SURROUND_51 if args.surround else AudioConfiguration.STEREO,
        )
        await self._client.start_app(server, stream_config, args.app_id,
                                     sops=args.sops, local_audio=args.local_audio, gamepad_mask=args.gamepad_mask)
        server_information = server.server_information()
        print(f"Session started: {server_information.rtsp_session_url or '(no session url)'}")
        print(f"  remote input key: {stream_config.remote_input_aes_key.hex()}")

    async def _command_quit(self, server: ServerData, args):
        await self._client.quit_app(server)
        print(f"Stopped the running app on {server.hostname or server.address}")


def arguments_parse(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="gamestream", description="GameStream / Sunshine host client")
    parser.add_argument("--host", default=None, help="host[:port], defaults to [server].address in the config")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("status", help="show host information")
    pair = commands.add_parser("pair", help="pair with the host")
    pair.add_argument("--pin", default=None, help="4 digit PIN, generated when omitted")
    commands.add_parser("unpair", help="forget the pairing on the host")
    commands.add_parser("list", help="list applications")

    boxart = commands.add_parser("boxart", help="save the box art of an application")
    boxart.add_argument("app_id", type=int)
    boxart.add_argument("output", type=Path)

    launch = commands.add_parser("launch", help="launch or resume an application")
    launch.add_argument("app_id", type=int)
    launch.add_argument("--width", type=int, default=1280)
    launch.add_argument("--height", type=int, default=720)
    launch.add_argument("--fps", type=int, default=60)
    launch.add_argument("--surround", action="store_true", help="5.1 audio instead of stereo")
    launch.add_argument("--sops", action="store_true", help="let the host optimize game settings")
    launch.add_argument("--local-audio", action="store_true", help="keep playing audio on the host")
    launch.add_argument("--gamepad-mask", type=int, default=1)

    commands.add_parser("quit", help="quit the running application")
    return parser.parse_args(argv)


async def main(args: argparse.Namespace) -> int:
    logging.info("Starting gamestream client ...")

    config = Config(os.environ.get("GAMESTREAM_CONFIG", "./config.toml"))

    try:
        await config.initialize()

        args.host = args.host or config.server_address
        if not args.host:
            logging.error("No host given and no [server].address configured")
            return 2

        await GameStream(config).run(args)
    except ConfigurationLoadError:
        logging.error("Could not load configuration. Exiting")
        return 1
    except GameStreamError as e:
        logging.error(f"{e.code.name}: {gs_error() if e.message is None else e.message}")
        return 1
    except CryptoError as e:
        logging.exception(e)
        logging.error("Client identity could not be used")
        return 1
    finally:
        await config.close()

    return 0


def run():
    args = arguments_parse()
    setup_logging(args.verbose)
    sys.exit(asyncio.run(main(args)))


if __name__ == "__main__":
    run()
