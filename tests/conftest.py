"""Shared fixtures for nk tests."""
import pytest

from nk_keys import KeyType, generate_keypair


@pytest.fixture
def user_keypair():
    """Fresh user keypair"""
    return generate_keypair(KeyType.USER)


@pytest.fixture
def seed_file(tmp_path, user_keypair):
    """Key file with the seed buried between junk lines"""
    path = tmp_path / "user.nk"
    path.write_bytes(b"# user key\n\nnot-a-key\n" + user_keypair.seed + b"\ntrailer\n")
    return str(path)


@pytest.fixture
def public_file(tmp_path, user_keypair):
    """File holding only the public key"""
    path = tmp_path / "user.pub"
    path.write_bytes(user_keypair.public_key + b"\n")
    return str(path)
