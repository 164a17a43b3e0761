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

import asyncio
import enum
import logging
import re
import ssl
from pathlib import Path
from typing import Dict, Optional

import aiohttp

from wire.errors import GSResult, GameStreamError

CLIENT_CERT_NAME = "client.pem"
CLIENT_KEY_NAME = "key.pem"

_REDACTED_PARAMS = re.compile(r"((?:clientcert|rikey|clientpairingsecret)=)[0-9a-fA-F]+")


class RequestTimeout(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    LONG = "long"


DEFAULT_TIMEOUTS = {
    RequestTimeout.LOW: 5.0,
    RequestTimeout.MEDIUM: 10.0,
    RequestTimeout.LONG: 30.0,
}


def redact_url(url: str) -> str:
    return _REDACTED_PARAMS.sub(r"\1<redacted>", url)


class HttpClient:
    """
    GET-only transport for the GameStream host.

    HTTPS uses the client certificate for mutual TLS and does NOT verify the
    host certificate: hosts are self-signed and trust comes from the pairing
    signatures. The relaxed ssl context lives in this session only.
    """

    def __init__(self, timeouts: Optional[Dict[RequestTimeout, float]] = None):
        self._timeouts = dict(DEFAULT_TIMEOUTS)
        if timeouts:
            self._timeouts.update(timeouts)
        self._session: Optional[aiohttp.ClientSession] = None
        self._ssl_context: Optional[ssl.SSLContext] = None

    @staticmethod
    def _create_ssl_context(cert_path: Path, key_path: Path) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
        return context

    async def init(self, key_dir: Path) -> None:
        key_dir = Path(key_dir)
        self._ssl_context = self._create_ssl_context(key_dir / CLIENT_CERT_NAME, key_dir / CLIENT_KEY_NAME)
        if self._session is not None:
            await self._session.close()
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(ssl=self._ssl_context, force_close=True),
        )
        logging.debug(f"http transport initialized with credentials from {key_dir}")

    async def request(self, url: str, timeout: RequestTimeout) -> bytes:
        if self._session is None:
            raise RuntimeError("HttpClient.init() must be called before issuing requests")

        logging.debug(f"GET {redact_url(url)}")
        try:
            async with self._session.get(
                    url,
                    allow_redirects=False,
                    timeout=aiohttp.ClientTimeout(total=self._timeouts[timeout]),
            ) as response:
                if not 200 <= response.status < 300:
                    logging.debug(f"HTTP {response.status} from {redact_url(url)}")
                    raise GameStreamError(GSResult.IO_ERROR, f"HTTP status {response.status}")
                return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, ssl.SSLError, OSError) as e:
            logging.debug(f"request to {redact_url(url)} failed: {e!r}")
            raise GameStreamError(GSResult.IO_ERROR, str(e) or type(e).__name__) from e

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
            logging.debug("http transport closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
