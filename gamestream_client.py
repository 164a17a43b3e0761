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

import logging
import secrets
from typing import Callable, List
from urllib.parse import quote

from crypto_manager import AES_BLOCK_SIZE, CryptoManager, CryptoError
from server_data import (
    DEFAULT_HTTPS_PORT,
    AppEntry,
    ServerData,
    StreamConfiguration,
    extract_version_quad,
)
from wire.blob import Blob
from wire.errors import GSResult, GameStreamError, gs_fail, gs_set_error
from wire.http_client import HttpClient, RequestTimeout
from wire.xml_reader import xml_applist, xml_find, xml_search, xml_status

MIN_SUPPORTED_GFE_VERSION = 3
MAX_SUPPORTED_GFE_VERSION = 7

SERVER_BUSY_STATE = "_SERVER_BUSY"
SOPS_MAX_FPS = 60
UHD_HEIGHT = 2160

PAIRING_SALT_LENGTH = 16
PAIRING_CHALLENGE_LENGTH = 16
PAIRING_SECRET_LENGTH = 16
PAIRING_SIGNATURE_LENGTH = 256
RIKEY_LENGTH = 16


def generate_pin() -> str:
    return "{0:04}".format(secrets.randbelow(10000))


def _decode_hex(text: str, name: str) -> Blob:
    try:
        return Blob.from_string(text.strip()).hex_to_bytes()
    except ValueError as e:
        raise GameStreamError(GSResult.INVALID, f"<{name}> is not valid hex") from e


class GameStreamClient:
    """
    Client side of the GameStream host protocol: serverinfo, pairing and the
    launch/resume/cancel session lifecycle. Every call is awaited to
    completion, nothing runs in the background.
    """

    def __init__(self, crypto: CryptoManager, http: HttpClient, unique_id: str,
                 device_name: str = "roth", verify_pin: bool = False,
                 launch_url_extra: Callable[[], str] = lambda: ""):
        self._crypto = crypto
        self._http = http
        self._unique_id = unique_id
        self._device_name = device_name
        self._verify_pin = verify_pin
        self._launch_url_extra = launch_url_extra

    @staticmethod
    def from_config(config, crypto: CryptoManager, http: HttpClient) -> "GameStreamClient":
        launch_url_extra = config.launch_url_extra
        return GameStreamClient(
            crypto, http, config.unique_id,
            device_name=config.device_name,
            verify_pin=config.verify_pin,
            launch_url_extra=lambda: launch_url_extra,
        )

    def _url(self, server: ServerData, https: bool, endpoint: str, **params) -> str:
        if https:
            base = f"https://{server.address}:{server.https_port}/{endpoint}"
        else:
            base = f"http://{server.address}:{server.http_port}/{endpoint}"
        query = f"uniqueid={self._unique_id}"
        for key, value in params.items():
            query += f"&{key}={quote(str(value), safe='')}"
        return f"{base}?{query}"

    def _pair_url(self, server: ServerData, https: bool = False, **params) -> str:
        return self._url(server, https, "pair", devicename=self._device_name, updateState=1, **params)

    async def init(self, address: str) -> ServerData:
        gs_set_error("")
        try:
            server = ServerData.from_address(address)
        except ValueError as e:
            raise gs_fail(GSResult.INVALID, f"Invalid host address {address!r}: {e}") from e

        if not await self._crypto.load_cert_key_pair():
            logging.info("No client certificate, generating a new one")
            if not await self._crypto.generate_new_cert_key_pair():
                raise gs_fail(GSResult.FAILED, "Failed to generate client certificate")

        await self._http.init(self._crypto.key_dir)

        await self.load_server_status(server)
        return server

    async def load_serverinfo(self, server: ServerData, https: bool) -> None:
        data = await self._http.request(self._url(server, https, "serverinfo"), RequestTimeout.LOW)
        xml_status(data)

        current_game_text = xml_find(data, "currentgame")
        paired_text = xml_find(data, "PairStatus")
        app_version = xml_find(data, "appversion")
        state_text = xml_find(data, "state")
        # present on every host version this client supports
        if not current_game_text or not paired_text or not app_version or not state_text:
            raise GameStreamError(GSResult.INVALID, "serverinfo response is incomplete")

        try:
            current_game = int(current_game_text)
            codec_mode_support = int(xml_find(data, "ServerCodecModeSupport") or 0)
            https_port = int(xml_find(data, "HttpsPort") or 0)
        except ValueError as e:
            raise GameStreamError(GSResult.INVALID, "serverinfo response has a malformed number") from e

        if state_text.strip() == SERVER_BUSY_STATE:
            # GFE >= 2.8 keeps currentgame set after the stream ended
            current_game = 0

        server.paired = paired_text.strip() == "1"
        server.current_game = current_game
        server.app_version = app_version
        server.server_major_version = extract_version_quad(app_version)[0]
        server.codec_mode_support = codec_mode_support
        server.gpu_type = xml_find(data, "gputype") or ""
        server.gs_version = xml_find(data, "GsVersion") or ""
        server.hostname = xml_find(data, "hostname") or ""
        server.gfe_version = xml_find(data, "GfeVersion") or ""
        server.mac = xml_find(data, "mac") or ""
        server.https_port = https_port or DEFAULT_HTTPS_PORT

        logging.debug(f"{server.address}: {server.hostname=} {server.app_version=} {server.paired=} "
                      f"{server.current_game=} {server.https_port=}")

    async def load_server_status(self, server: ServerData) -> None:
        gs_set_error("")
        if not server.https_port:
            await self.load_serverinfo(server, https=False)

        # hosts refuse serverinfo over https until paired, and over http
        # PairStatus is always 0. try https first, then fall back.
        try:
            await self.load_serverinfo(server, https=True)
        except GameStreamError as e:
            logging.info(f"HTTPS serverinfo failed ({e.code.name}). Retrying without HTTPS.")
            await self.load_serverinfo(server, https=False)

        if server.server_major_version > MAX_SUPPORTED_GFE_VERSION:
            raise gs_fail(
                GSResult.UNSUPPORTED_VERSION,
                "Ensure you're running the latest version of this client "
                "or downgrade GeForce Experience and try again")
        elif server.server_major_version < MIN_SUPPORTED_GFE_VERSION:
            raise gs_fail(
                GSResult.UNSUPPORTED_VERSION,
                "This client requires a newer version of GeForce Experience. "
                "Please upgrade GFE on your PC and try again.")

    async def unpair(self, server: ServerData) -> None:
        gs_set_error("")
        await self._unpair(server)

    async def _unpair(self, server: ServerData) -> None:
        await self._http.request(self._url(server, False, "unpair"), RequestTimeout.LOW)
        server.paired = False

    async def _pair_cleanup(self, server: ServerData) -> None:
        try:
            await self._unpair(server)
        except GameStreamError as e:
            logging.error(f"Could not unpair after failed pairing: {e}")

    @staticmethod
    def _pair_validate(data: bytes) -> str:
        xml_status(data)
        return xml_search(data, "paired").strip()

    async def pair(self, server: ServerData, pin: str) -> None:
        gs_set_error("")
        if server.paired:
            raise gs_fail(GSResult.WRONG_STATE, "Already paired")

        if server.current_game != 0:
            raise gs_fail(
                GSResult.WRONG_STATE,
                "The computer is currently in a game. You must close the game before pairing")

        try:
            await self._pair(server, pin)
        except (GameStreamError, CryptoError):
            await self._pair_cleanup(server)
            raise

        server.paired = True
        logging.info(f"Paired with {server.hostname or server.address}")

    async def _pair(self, server: ServerData, pin: str) -> None:
        logging.info(f"Pairing with generation {server.server_major_version} server")
        # generation 7 hosts moved from SHA-1 to SHA-256
        if server.server_major_version >= 7:
            hash_data = CryptoManager.sha256_hash_data
            create_aes_key = CryptoManager.create_aes_key_from_salt_sha256
            hash_length = 32
        else:
            hash_data = CryptoManager.sha1_hash_data
            create_aes_key = CryptoManager.create_aes_key_from_salt_sha1
            hash_length = 20

        client_cert = self._crypto.cert_data()

        logging.info("Start pairing stage #1")
        salt = Blob.random_bytes(PAIRING_SALT_LENGTH)
        salted_pin = salt.append(Blob.from_string(pin))

        data = await self._http.request(self._pair_url(
            server,
            phrase="getservercert",
            salt=salt.to_hex().to_string(),
            clientcert=client_cert.to_hex().to_string(),
        ), RequestTimeout.LONG)
        self._pair_validate(data)
        plain_cert_hex = xml_find(data, "plaincert")
        if not plain_cert_hex:
            raise gs_fail(GSResult.INVALID, "The host did not send its certificate. "
                                            "Another pairing attempt may be in progress.")
        plain_cert = _decode_hex(plain_cert_hex, "plaincert")

        logging.info("Start pairing stage #2")
        aes_key = create_aes_key(salted_pin)
        random_challenge = Blob.random_bytes(PAIRING_CHALLENGE_LENGTH)
        encrypted_challenge = CryptoManager.aes_encrypt(random_challenge, aes_key)

        data = await self._http.request(self._pair_url(
            server,
            clientchallenge=encrypted_challenge.to_hex().to_string(),
        ), RequestTimeout.LONG)
        self._pair_validate(data)
        enc_server_challenge_resp = _decode_hex(xml_search(data, "challengeresponse"), "challengeresponse")

        logging.info("Start pairing stage #3")
        if len(enc_server_challenge_resp) < hash_length + PAIRING_CHALLENGE_LENGTH:
            raise GameStreamError(GSResult.INVALID, "<challengeresponse> is too short")
        dec_server_challenge_resp = CryptoManager.aes_decrypt(enc_server_challenge_resp, aes_key)
        server_response = dec_server_challenge_resp.subdata(0, hash_length)
        server_challenge = dec_server_challenge_resp.subdata(hash_length, PAIRING_CHALLENGE_LENGTH)

        client_secret = Blob.random_bytes(PAIRING_SECRET_LENGTH)
        challenge_resp_hash = hash_data(
            server_challenge
            .append(CryptoManager.signature(client_cert))
            .append(client_secret)
        )
        # a SHA-1 digest is 20 bytes, zero fill it to whole AES blocks
        challenge_resp_hash = challenge_resp_hash.append(bytes(-len(challenge_resp_hash) % AES_BLOCK_SIZE))
        challenge_resp_encrypted = CryptoManager.aes_encrypt(challenge_resp_hash, aes_key)

        data = await self._http.request(self._pair_url(
            server,
            serverchallengeresp=challenge_resp_encrypted.to_hex().to_string(),
        ), RequestTimeout.LONG)
        self._pair_validate(data)
        server_secret_resp = _decode_hex(xml_search(data, "pairingsecret"), "pairingsecret")

        logging.info("Start pairing stage #4")
        if len(server_secret_resp) < PAIRING_SECRET_LENGTH + PAIRING_SIGNATURE_LENGTH:
            raise GameStreamError(GSResult.INVALID, "<pairingsecret> is too short")
        server_secret = server_secret_resp.subdata(0, PAIRING_SECRET_LENGTH)
        server_signature = server_secret_resp.subdata(PAIRING_SECRET_LENGTH, PAIRING_SIGNATURE_LENGTH)

        if not CryptoManager.verify_signature(server_secret, server_signature, plain_cert):
            logging.error("Host secret signature does not match its certificate")
            raise gs_fail(GSResult.FAILED, "MITM attack detected")

        server_challenge_resp_hash = hash_data(
            random_challenge
            .append(CryptoManager.signature(plain_cert))
            .append(server_secret)
        )
        if server_challenge_resp_hash != server_response:
            if self._verify_pin:
                raise gs_fail(GSResult.FAILED, "Incorrect PIN")
            logging.debug("Host PIN proof does not match the local hash")

        client_pairing_secret = client_secret.append(
            CryptoManager.sign_data(client_secret, self._crypto.key_data()))

        data = await self._http.request(self._pair_url(
            server,
            clientpairingsecret=client_pairing_secret.to_hex().to_string(),
        ), RequestTimeout.LONG)
        if self._pair_validate(data) != "1":
            raise gs_fail(GSResult.FAILED, "Pairing failed")

        logging.info("Start pairing stage #5")
        data = await self._http.request(self._pair_url(
            server, https=True,
            phrase="pairchallenge",
        ), RequestTimeout.LONG)
        if self._pair_validate(data) != "1":
            raise gs_fail(GSResult.FAILED, "Pairing failed")

    async def applist(self, server: ServerData) -> List[AppEntry]:
        gs_set_error("")
        data = await self._http.request(self._url(server, True, "applist"), RequestTimeout.MEDIUM)
        xml_status(data)
        return xml_applist(data)

    async def app_boxart(self, server: ServerData, app_id: int) -> bytes:
        gs_set_error("")
        return await self._http.request(
            self._url(server, True, "appasset", appid=app_id, AssetType=2, AssetIdx=0),
            RequestTimeout.MEDIUM)

    async def start_app(self, server: ServerData, config: StreamConfiguration, app_id: int,
                        sops: bool, local_audio: bool, gamepad_mask: int) -> None:
        gs_set_error("")
        if config.height >= UHD_HEIGHT and not server.supports_4k:
            raise gs_fail(GSResult.NOT_SUPPORTED_4K, "4K not supported")

        rikey = Blob.random_bytes(RIKEY_LENGTH)
        config.remote_input_aes_key = bytes(rikey)
        rikey_id = 0

        if server.current_game == 0:
            fps = SOPS_MAX_FPS if sops and config.fps > SOPS_MAX_FPS else config.fps
            url = self._url(
                server, True, "launch",
                appid=app_id,
                mode=f"{config.width}x{config.height}x{fps}",
                additionalStates=1,
                sops=int(bool(sops)),
                rikey=rikey.to_hex().to_string(),
                rikeyid=rikey_id,
                localAudioPlayMode=int(bool(local_audio)),
                surroundAudioInfo=config.audio_configuration.surround_audio_info,
                remoteControllersBitmap=gamepad_mask,
                gcmap=gamepad_mask,
            )
            logging.info(f"Launching app {app_id} at {config.width}x{config.height}x{fps}")
        else:
            url = self._url(
                server, True, "resume",
                rikey=rikey.to_hex().to_string(),
                rikeyid=rikey_id,
            )
            logging.info(f"Resuming app {server.current_game}")

        data = await self._http.request(url + self._launch_url_extra(), RequestTimeout.LONG)
        # a session may be live from here on even if the reply turns out bad
        server.current_game = app_id

        xml_status(data)
        if xml_search(data, "gamesession") == "0":
            raise gs_fail(GSResult.FAILED, "The host failed to start the streaming session")

        session_url = xml_find(data, "sessionUrl0")
        if session_url is not None:
            server.rtsp_session_url = session_url
        else:
            logging.error("sessionUrl0 not found")

    async def quit_app(self, server: ServerData) -> None:
        gs_set_error("")
        data = await self._http.request(self._url(server, True, "cancel"), RequestTimeout.MEDIUM)
        xml_status(data)
        if xml_search(data, "cancel") == "0":
            raise gs_fail(GSResult.FAILED,
                          "Failed to quit the running app. It may have been started by another client.")

        server.current_game = 0
        server.rtsp_session_url = None
