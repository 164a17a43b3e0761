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
from pathlib import Path

from voluptuous import Schema, Required, Optional, Any, All, Range, Length, Match
import voluptuous.error
import aiofiles
import tomlkit
import tomlkit.exceptions

from wire.http_client import RequestTimeout, DEFAULT_TIMEOUTS

DEFAULT_DEVICE_NAME = "roth"
DEFAULT_LAUNCH_URL_EXTRA = "&corever=1"

_TIMEOUT_KEYS = {
    RequestTimeout.LOW: "timeout_low",
    RequestTimeout.MEDIUM: "timeout_medium",
    RequestTimeout.LONG: "timeout_long",
}


class ConfigurationLoadError(Exception): pass


class Config:
    config: tomlkit.TOMLDocument
    config_opened: bool = False

    def __init__(self, config_location: Path):
        self.config_location = Path(config_location)

        timeout = All(Any(int, float), Range(min=0.1, max=600))
        self.config_schema = Schema({
            Required('client'): {
                Optional('unique_id'): All(str, Match(r"^[0-9a-f]{16}$")),
                Optional('device_name'): All(str, Length(min=1, max=64)),
                Required('key_dir'): All(str, Length(min=1)),
            },
            Optional('http'): {
                Optional('timeout_low'): timeout,
                Optional('timeout_medium'): timeout,
                Optional('timeout_long'): timeout,
            },
            Optional('pairing'): {
                Optional('verify_pin'): bool,
            },
            Optional('stream'): {
                Optional('launch_url_extra'): str,
            },
            Optional('server'): {
                Optional('address'): All(str, Length(min=1)),
            },
        })

    async def initialize(self):
        try:
            async with aiofiles.open(self.config_location, 'r') as config_file:
                file_data = await config_file.read()
                self.config = tomlkit.parse(file_data)
                logging.debug("Loaded Configuration without toml format error")
                logging.debug("Validating against Schema.")
                self.config_schema(self.config.unwrap())
                self.config_opened = True
                logging.debug("Validated against Schema.")
        except FileNotFoundError as e:
            logging.exception(e)
            logging.warning(
                f"Could not find {self.config_location}. Copy from example/config.toml to {self.config_location}")
            raise ConfigurationLoadError() from e
        except IOError as e:
            logging.exception(e)
            logging.warning(f"Could not open file {self.config_location}")
            raise ConfigurationLoadError() from e
        except tomlkit.exceptions.ParseError as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} is invalid")
            raise ConfigurationLoadError() from e
        except voluptuous.error.MultipleInvalid as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} does not match expected format")
            logging.warning(f"Issue configuration item: {e.path}")
            raise ConfigurationLoadError() from e

        if "unique_id" not in self.config["client"]:
            # one id per install, every host remembers the pairing under it
            self.config["client"]["unique_id"] = secrets.token_hex(8)
            logging.info("Generated a new client unique id.")

        logging.info(f"Configuration loaded.")

    def _section(self, name: str) -> dict:
        return self.config.get(name, {})

    @property
    def unique_id(self) -> str:
        return str(self.config["client"]["unique_id"])

    @property
    def device_name(self) -> str:
        return str(self.config["client"].get("device_name", DEFAULT_DEVICE_NAME))

    @property
    def key_dir(self) -> Path:
        return Path(str(self.config["client"]["key_dir"])).expanduser()

    @property
    def timeouts(self) -> dict:
        http = self._section("http")
        return {
            timeout: float(http.get(key, DEFAULT_TIMEOUTS[timeout]))
            for timeout, key in _TIMEOUT_KEYS.items()
        }

    @property
    def verify_pin(self) -> bool:
        return bool(self._section("pairing").get("verify_pin", False))

    @property
    def launch_url_extra(self) -> str:
        return str(self._section("stream").get("launch_url_extra", DEFAULT_LAUNCH_URL_EXTRA))

    @property
    def server_address(self):
        address = self._section("server").get("address")
        return str(address) if address is not None else None

    async def close(self):
        if self.config_opened is True:
            async with aiofiles.open(self.config_location, 'w') as config_file:
                await config_file.write(tomlkit.dumps(self.config))
            logging.debug("Config file saved to disk.")
        logging.info(f"Configuration Saved.")
