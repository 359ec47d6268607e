#!/usr/bin/env python3
"""Generate a vanity nkey whose public key starts with a given base32 prefix."""

import sys

from nk_keys import BASE32_ALPHABET, KeyType, NkError
from nk_vanity import run_vanity_search


def main():
    if len(sys.argv) < 3:
        print(f"Usage: {sys.argv[0]} <user|account|server|cluster|operator> <prefix>")
        print(f"Valid base32 characters: {BASE32_ALPHABET}")
        sys.exit(1)

    prefix = sys.argv[2].upper()

    for ch in prefix:
        if ch not in BASE32_ALPHABET:
            print(f"Error: '{ch}' is not a valid base32 character.")
            print(f"Valid characters: {BASE32_ALPHABET}")
            sys.exit(1)

    try:
        key_type = KeyType.parse(sys.argv[1])
        run_vanity_search(key_type, prefix)
    except NkError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
