#!/usr/bin/env python3
"""Generate nkeys, sign content with them and verify signatures."""

import argparse
import base64
import binascii
import logging
import sys

from nk_keys import (
    ConfigError,
    KeyFormatError,
    KeyType,
    NkError,
    SecretBuffer,
    generate_keypair,
    keypair_from_public_key,
    keypair_from_seed,
    read_key_file,
)
from nk_vanity import DEFAULT_MAX_ATTEMPTS, SearchJob, create_vanity_key

__version__ = "0.1.0"

USAGE = (
    "Usage: nk [-v] [-gen type] [-sign content] [-verify content] [-inkey key] "
    "[-pubin publickey] [-sig signature] [-pubout] [-e entropy] [-pre vanity]"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nk", usage=USAGE[len("Usage: "):], allow_abbrev=False)
    parser.add_argument("-e", dest="entropy", default="", help="Entropy, e.g. /dev/urandom")
    parser.add_argument("-inkey", default="", help="Input key file (seed/private key)")
    parser.add_argument("-pubin", default="", help="Public key file")
    parser.add_argument("-sign", default="", help="Sign <content> with -inkey <file>")
    parser.add_argument("-sig", default="", help="Signature, base64 encoded")
    parser.add_argument(
        "-verify", default="",
        help="Verify <content> with -inkey <file> or -pubin <file> and -sig <signature>",
    )
    parser.add_argument("-gen", dest="key_type", default="", help="Generate key for <type>, e.g. nk -gen user")
    parser.add_argument("-pubout", action="store_true", help="Output public key")
    parser.add_argument("-v", dest="version", action="store_true", help="Show version")
    parser.add_argument(
        "-pre", default="",
        help="Attempt to generate public key given prefix, e.g. nk -gen user -pre derek",
    )
    parser.add_argument(
        "-maxpre", type=int, default=DEFAULT_MAX_ATTEMPTS,
        help="Maximum attempts at generating the correct key prefix",
    )
    parser.add_argument("--debug", action="store_true", help="Log debug diagnostics to stderr")
    return parser


def _load_keypair(key_file: str):
    with SecretBuffer(read_key_file(key_file)) as seed:
        return keypair_from_seed(seed)


def public_from_seed(key_file: str) -> str:
    return _load_keypair(key_file).public_key.decode()


def sign(content: str, key_file: str) -> str:
    """Return the base64 signature of content made with the seed in key_file."""
    if not key_file:
        raise ConfigError("Sign requires a seed/private key via -inkey <file>")
    kp = _load_keypair(key_file)
    return base64.b64encode(kp.sign(content.encode())).decode()


def verify(content: str, key_file: str, pub_file: str, sig: str) -> None:
    if not key_file and not pub_file:
        raise ConfigError("Verify requires a seed key via -inkey or a public key via -pubin")
    if not sig:
        raise ConfigError("Verify requires a signature via -sig")

    if key_file:
        kp = _load_keypair(key_file)
    else:
        with SecretBuffer(read_key_file(pub_file)) as public:
            kp = keypair_from_public_key(public)

    try:
        raw_sig = base64.b64decode(sig, validate=True)
    except binascii.Error as e:
        raise KeyFormatError(f"illegal base64 signature: {e}") from e
    kp.verify(content.encode(), raw_sig)


def generate(key_type: str, entropy: str, prefix: str, max_attempts: int):
    kt = KeyType.parse(key_type)
    # Check to see if we are trying to do a vanity public key.
    if prefix:
        return create_vanity_key(SearchJob(kt, prefix, entropy, max_attempts))
    return generate_keypair(kt, entropy)


def run(args) -> None:
    if args.version:
        print(f"nk version {__version__}")

    if args.key_type:
        kp = generate(args.key_type, args.entropy, args.pre, args.maxpre)
        print(kp.seed.decode())
        if args.pubout or args.pre:
            print(kp.public_key.decode())
        return

    if args.entropy:
        raise ConfigError("Entropy file only used when creating keys with -gen")

    if args.sign:
        print(sign(args.sign, args.inkey))
        return

    if args.verify:
        verify(args.verify, args.inkey, args.pubin, args.sig)
        print("Verified OK")
        return

    # Show public key from seed/private
    if args.inkey and args.pubout:
        print(public_from_seed(args.inkey))
        return

    raise ConfigError(USAGE)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    try:
        run(args)
    except NkError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
