"""pytest configuration file."""

import asyncio

import pytest

from crypto_manager import CryptoManager
from fake_host import FakeHost


def _generate_identity(key_dir) -> CryptoManager:
    # private loop, the one pytest-asyncio installs must stay untouched
    loop = asyncio.new_event_loop()
    try:
        crypto = CryptoManager(key_dir)
        assert loop.run_until_complete(crypto.generate_new_cert_key_pair())
        return crypto
    finally:
        loop.close()


@pytest.fixture(scope="session")
def client_key_dir(tmp_path_factory):
    """key directory holding a client identity, generated once per run"""
    key_dir = tmp_path_factory.mktemp("client_keys")
    _generate_identity(key_dir)
    return key_dir


@pytest.fixture(scope="session")
def host_identity(tmp_path_factory):
    """(cert pem, key pem) of the fake host"""
    crypto = _generate_identity(tmp_path_factory.mktemp("host_keys"))
    return bytes(crypto.cert_data()), bytes(crypto.key_data())


@pytest.fixture(scope="session")
def rogue_identity(tmp_path_factory):
    """an unrelated identity, used to forge host signatures"""
    crypto = _generate_identity(tmp_path_factory.mktemp("rogue_keys"))
    return bytes(crypto.cert_data()), bytes(crypto.key_data())


@pytest.fixture
async def crypto(client_key_dir):
    crypto = CryptoManager(client_key_dir)
    assert await crypto.load_cert_key_pair()
    return crypto


@pytest.fixture
def fake_host(host_identity):
    cert_pem, key_pem = host_identity
    return FakeHost(cert_pem, key_pem)
