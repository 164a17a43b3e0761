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

import contextvars
import enum
from typing import Optional

UNKNOWN_ERROR = "Unknown error..."

# last user facing message, isolated per thread and per asyncio task
_gs_error: contextvars.ContextVar[str] = contextvars.ContextVar("gs_error", default="")


class GSResult(enum.IntEnum):
    OK = 0
    FAILED = -1
    INVALID = -3
    WRONG_STATE = -4
    IO_ERROR = -5
    NOT_SUPPORTED_4K = -6
    UNSUPPORTED_VERSION = -7
    ERROR = -9


class GameStreamError(Exception):
    """
    raised by every protocol operation that does not end in GSResult.OK
    """

    def __init__(self, code: GSResult, message: Optional[str] = None):
        super(GameStreamError, self).__init__(message or code.name)
        self.code = code
        self.message = message

    def __repr__(self):
        return f"GameStreamError({self.code.name}, {self.message!r})"


def gs_set_error(error: str) -> None:
    _gs_error.set(error)


def gs_error() -> str:
    error = _gs_error.get()
    if not error:
        return UNKNOWN_ERROR
    return error


def gs_fail(code: GSResult, message: str) -> GameStreamError:
    """
    record a user facing message and build the error to raise with it
    """
    gs_set_error(message)
    return GameStreamError(code, message)
