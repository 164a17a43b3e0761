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

import datetime
import hashlib
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
import cryptography.exceptions
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.x509.oid import NameOID

from wire.blob import Blob
from wire.http_client import CLIENT_CERT_NAME, CLIENT_KEY_NAME

CERT_COMMON_NAME = "NVIDIA GameStream Client"
CERT_VALIDITY = datetime.timedelta(days=365 * 20)
RSA_KEY_SIZE = 2048
AES_BLOCK_SIZE = 16
AES_KEY_SIZE = 16


class CryptoError(Exception): pass


def _aes_ecb(key: bytes, data: bytes, encrypt: bool) -> Blob:
    """
    AES-128-ECB without padding. ECB is what the pairing handshake speaks;
    nothing outside of the handshake may use this.
    """
    if len(key) != AES_KEY_SIZE:
        raise CryptoError(f"AES key must be {AES_KEY_SIZE} bytes, got {len(key)}")
    if len(data) % AES_BLOCK_SIZE != 0:
        raise CryptoError(f"AES input must be a multiple of {AES_BLOCK_SIZE} bytes, got {len(data)}")
    cipher = Cipher(algorithms.AES(bytes(key)), modes.ECB())
    context = cipher.encryptor() if encrypt else cipher.decryptor()
    return Blob(context.update(bytes(data)) + context.finalize())


def _load_certificate(cert_pem: bytes) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(bytes(cert_pem))
    except ValueError as e:
        raise CryptoError("could not parse certificate") from e


class CryptoManager:
    """
    Client identity and the crypto primitives of the pairing handshake.

    The identity is a self signed RSA certificate + private key kept as PEM
    files in the key directory. Regenerating it invalidates every pairing.
    """

    def __init__(self, key_dir: Path):
        self.key_dir = Path(key_dir)
        self._cert_pem: Optional[bytes] = None
        self._key_pem: Optional[bytes] = None

    @property
    def cert_path(self) -> Path:
        return self.key_dir / CLIENT_CERT_NAME

    @property
    def key_path(self) -> Path:
        return self.key_dir / CLIENT_KEY_NAME

    async def load_cert_key_pair(self) -> bool:
        try:
            async with aiofiles.open(self.cert_path, "rb") as cert_file:
                cert_pem = await cert_file.read()
            async with aiofiles.open(self.key_path, "rb") as key_file:
                key_pem = await key_file.read()
        except FileNotFoundError:
            logging.debug(f"no client identity in {self.key_dir}")
            return False
        except IOError as e:
            logging.exception(e)
            logging.warning(f"Could not read client identity from {self.key_dir}")
            return False

        try:
            certificate = x509.load_pem_x509_certificate(cert_pem)
            private_key = serialization.load_pem_private_key(key_pem, password=None)
        except (ValueError, TypeError, cryptography.exceptions.UnsupportedAlgorithm) as e:
            logging.warning(f"Client identity in {self.key_dir} is invalid: {e}")
            return False

        if certificate.public_key().public_numbers() != private_key.public_key().public_numbers():
            logging.warning(f"Client certificate and key in {self.key_dir} do not match")
            return False

        self._cert_pem = cert_pem
        self._key_pem = key_pem
        logging.debug(f"Loaded client identity from {self.key_dir}")
        return True

    async def generate_new_cert_key_pair(self) -> bool:
        try:
            private_key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)
            subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, CERT_COMMON_NAME)])
            now = datetime.datetime.now(datetime.timezone.utc)
            certificate = (
                x509.CertificateBuilder()
                .subject_name(subject)
                .issuer_name(issuer)
                .public_key(private_key.public_key())
                .serial_number(x509.random_serial_number())
                .not_valid_before(now)
                .not_valid_after(now + CERT_VALIDITY)
                .sign(private_key, hashes.SHA256())
            )
        except (ValueError, OSError) as e:
            logging.exception(e)
            logging.error("Could not generate client identity")
            return False

        cert_pem = certificate.public_bytes(serialization.Encoding.PEM)
        key_pem = private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

        # both files appear via rename so a crash never leaves half an identity
        suffix = f".{uuid.uuid4().hex}.tmp"
        tmp_key_path = self.key_path.with_name(self.key_path.name + suffix)
        tmp_cert_path = self.cert_path.with_name(self.cert_path.name + suffix)
        try:
            await aiofiles.os.makedirs(self.key_dir, exist_ok=True)
            async with aiofiles.open(tmp_key_path, "wb") as key_file:
                await key_file.write(key_pem)
            os.chmod(tmp_key_path, 0o600)
            async with aiofiles.open(tmp_cert_path, "wb") as cert_file:
                await cert_file.write(cert_pem)
            await aiofiles.os.replace(tmp_key_path, self.key_path)
            await aiofiles.os.replace(tmp_cert_path, self.cert_path)
        except IOError as e:
            logging.exception(e)
            logging.error(f"Could not write client identity to {self.key_dir}")
            for tmp_path in (tmp_key_path, tmp_cert_path):
                if await aiofiles.os.path.exists(tmp_path):
                    await aiofiles.os.remove(tmp_path)
            return False

        self._cert_pem = cert_pem
        self._key_pem = key_pem
        logging.info(f"Generated new client identity in {self.key_dir}")
        return True

    def cert_data(self) -> Blob:
        if self._cert_pem is None:
            raise CryptoError("client certificate is not loaded")
        return Blob(self._cert_pem)

    def key_data(self) -> Blob:
        if self._key_pem is None:
            raise CryptoError("client private key is not loaded")
        return Blob(self._key_pem)

    @staticmethod
    def sha1_hash_data(data: bytes) -> Blob:
        return Blob(hashlib.sha1(bytes(data)).digest())

    @staticmethod
    def sha256_hash_data(data: bytes) -> Blob:
        return Blob(hashlib.sha256(bytes(data)).digest())

    @staticmethod
    def create_aes_key_from_salt_sha1(salted: bytes) -> Blob:
        return CryptoManager.sha1_hash_data(salted).subdata(0, AES_KEY_SIZE)

    @staticmethod
    def create_aes_key_from_salt_sha256(salted: bytes) -> Blob:
        return CryptoManager.sha256_hash_data(salted).subdata(0, AES_KEY_SIZE)

    @staticmethod
    def aes_encrypt(plaintext: bytes, key: bytes) -> Blob:
        return _aes_ecb(key, plaintext, encrypt=True)

    @staticmethod
    def aes_decrypt(ciphertext: bytes, key: bytes) -> Blob:
        return _aes_ecb(key, ciphertext, encrypt=False)

    @staticmethod
    def sign_data(data: bytes, key_pem: bytes) -> Blob:
        try:
            private_key = serialization.load_pem_private_key(bytes(key_pem), password=None)
            return Blob(private_key.sign(bytes(data), padding.PKCS1v15(), hashes.SHA256()))
        except (ValueError, TypeError, cryptography.exceptions.UnsupportedAlgorithm) as e:
            raise CryptoError("could not sign data") from e

    @staticmethod
    def verify_signature(data: bytes, signature: bytes, cert_pem: bytes) -> bool:
        public_key = _load_certificate(cert_pem).public_key()
        try:
            return public_key.verify(bytes(signature), bytes(data), padding.PKCS1v15(), hashes.SHA256()) is None
        except cryptography.exceptions.InvalidSignature:
            return False
        except TypeError as e:
            # not an RSA certificate
            raise CryptoError("unsupported certificate key type") from e

    @staticmethod
    def signature(cert_pem: bytes) -> Blob:
        """
        raw signatureValue of the certificate, used as the identity witness while pairing
        """
        return Blob(_load_certificate(cert_pem).signature)
