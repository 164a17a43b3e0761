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

import binascii
import secrets


class Blob(bytes):
    """
    immutable byte buffer used for every crypto input/output and wire payload.
    every operation returns a new Blob, nothing is shared with the receiver.
    """

    @classmethod
    def from_string(cls, text: str) -> "Blob":
        return cls(text.encode("utf-8"))

    @classmethod
    def random_bytes(cls, length: int) -> "Blob":
        return cls(secrets.token_bytes(length))

    def append(self, other: bytes) -> "Blob":
        return Blob(bytes(self) + bytes(other))

    def subdata(self, offset: int, length: int) -> "Blob":
        if offset < 0 or length < 0 or offset + length > len(self):
            raise ValueError(f"subdata({offset}, {length}) out of range for {len(self)} bytes")
        return Blob(bytes(self)[offset:offset + length])

    def to_hex(self) -> "Blob":
        # lowercase, no separators
        return Blob(binascii.hexlify(self))

    def hex_to_bytes(self) -> "Blob":
        try:
            return Blob(binascii.unhexlify(bytes(self)))
        except binascii.Error as e:
            raise ValueError("not a hex string") from e

    def to_string(self) -> str:
        return bytes(self).decode("utf-8")

    def __repr__(self):
        return f"Blob({bytes(self).hex()})"
