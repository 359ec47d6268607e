"""
Unit Tests for the secret key reader

Every path through read_key must leave the input buffer scrubbed.
"""
import os
import threading

import pytest

from nk_keys import (
    ConfigError,
    KeyNotFoundError,
    SecretBuffer,
    read_key,
    read_key_file,
    wipe,
)


def is_scrubbed(buf) -> bool:
    return len(buf) > 0 and all(b == ord("x") for b in buf)


class TestReadKey:
    """Test suite for read_key"""

    def test_finds_key_among_junk(self, user_keypair):
        contents = bytearray(b"\n  \ngarbage line\n" + user_keypair.seed + b"\n\nmore junk\n")

        key = read_key(contents)

        assert key == bytearray(user_keypair.seed)
        assert isinstance(key, bytearray)
        assert is_scrubbed(contents)

    def test_returned_key_is_independent_copy(self, user_keypair):
        contents = bytearray(user_keypair.seed)

        key = read_key(contents)

        assert key is not contents
        assert bytes(key) == user_keypair.seed
        assert is_scrubbed(contents)

    def test_first_valid_line_wins(self, user_keypair):
        contents = bytearray(user_keypair.public_key + b"\n" + user_keypair.seed + b"\n")

        assert read_key(contents) == bytearray(user_keypair.public_key)

    def test_key_on_last_line_without_newline(self, user_keypair):
        contents = bytearray(b"junk\n" + user_keypair.seed)

        assert read_key(contents) == bytearray(user_keypair.seed)
        assert is_scrubbed(contents)

    def test_crlf_line_endings(self, user_keypair):
        contents = bytearray(b"junk\r\n" + user_keypair.seed + b"\r\n")

        assert read_key(contents) == bytearray(user_keypair.seed)
        assert is_scrubbed(contents)

    def test_not_found_still_scrubs(self):
        contents = bytearray(b"nothing\nto see\nhere\n")

        with pytest.raises(KeyNotFoundError, match="Could not find a valid key"):
            read_key(contents)

        assert is_scrubbed(contents)

    def test_corrupted_key_is_not_found(self, user_keypair):
        seed = bytearray(user_keypair.seed)
        seed[20] = ord("A") if seed[20] != ord("A") else ord("B")
        contents = bytearray(seed)

        with pytest.raises(KeyNotFoundError):
            read_key(contents)

        assert is_scrubbed(contents)

    def test_empty_content(self):
        with pytest.raises(KeyNotFoundError):
            read_key(bytearray())

    def test_read_only_buffer_rejected(self, user_keypair):
        with pytest.raises(TypeError):
            read_key(user_keypair.seed)


class TestReadKeyFile:
    """Test suite for loading keys from files"""

    def test_reads_seed_file(self, seed_file, user_keypair):
        assert read_key_file(seed_file) == bytearray(user_keypair.seed)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            read_key_file(str(tmp_path / "missing.nk"))

    def test_file_without_key(self, tmp_path):
        path = tmp_path / "empty.nk"
        path.write_bytes(b"just text\n")

        with pytest.raises(KeyNotFoundError):
            read_key_file(str(path))

    @pytest.mark.skipif(not os.path.isdir("/dev/fd"), reason="needs /dev/fd")
    def test_reads_from_pipe_past_first_chunk(self, user_keypair):
        r, w = os.pipe()
        payload = b"junk line\n" * 1000 + user_keypair.seed + b"\n"

        def feed():
            with os.fdopen(w, "wb") as f:
                f.write(payload)

        writer = threading.Thread(target=feed, daemon=True)
        writer.start()
        try:
            key = read_key_file(f"/dev/fd/{r}")
        finally:
            writer.join(timeout=5)
            os.close(r)

        assert key == bytearray(user_keypair.seed)


class TestWipe:
    """Test suite for wipe and SecretBuffer"""

    def test_wipe_in_place(self):
        buf = bytearray(b"secret")
        wipe(buf)

        assert buf == bytearray(b"xxxxxx")

    def test_secret_buffer_wipes_on_exit(self):
        buf = bytearray(b"secret")

        with SecretBuffer(buf) as inner:
            assert inner is buf
            assert inner == bytearray(b"secret")

        assert is_scrubbed(buf)

    def test_secret_buffer_wipes_on_error(self):
        buf = bytearray(b"secret")

        with pytest.raises(RuntimeError):
            with SecretBuffer(buf):
                raise RuntimeError("boom")

        assert is_scrubbed(buf)
