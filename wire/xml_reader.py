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
import xml.etree.ElementTree as ET
from typing import List, Optional

from server_data import AppEntry
from wire.errors import GSResult, GameStreamError, gs_set_error

"""
Every response is a small document of the form

    <root status_code="200" status_message="OK">
        <hostname>...</hostname>
        ...
    </root>
"""


def _parse(data: bytes) -> ET.Element:
    try:
        return ET.fromstring(data)
    except ET.ParseError as e:
        logging.debug(f"unparsable response body {data[:256]!r}")
        raise GameStreamError(GSResult.INVALID, "Malformed response from host") from e


def xml_status(data: bytes) -> None:
    root = _parse(data)
    status_code = root.get("status_code")
    if status_code != "200":
        status_message = root.get("status_message") or f"Host returned status {status_code}"
        logging.debug(f"host status {status_code}: {status_message}")
        gs_set_error(status_message)
        raise GameStreamError(GSResult.ERROR, status_message)


def xml_find(data: bytes, name: str) -> Optional[str]:
    element = _parse(data).find(name)
    if element is None:
        return None
    return element.text if element.text is not None else ""


def xml_search(data: bytes, name: str) -> str:
    value = xml_find(data, name)
    if value is None:
        raise GameStreamError(GSResult.INVALID, f"Response is missing <{name}>")
    return value


def xml_applist(data: bytes) -> List[AppEntry]:
    apps = []
    for app_node in _parse(data).iter("App"):
        title = app_node.findtext("AppTitle")
        app_id = app_node.findtext("ID")
        if title is None or app_id is None:
            raise GameStreamError(GSResult.INVALID, "Application entry is missing <AppTitle> or <ID>")
        try:
            app_id = int(app_id)
        except ValueError as e:
            raise GameStreamError(GSResult.INVALID, f"Application id {app_id!r} is not a number") from e
        apps.append(AppEntry(
            id=app_id,
            name=title,
            hdr_supported=(app_node.findtext("IsHdrSupported") or "0").strip() == "1",
        ))

    return apps
