"""Parallel vanity-prefix search for nkeys."""

import logging
import multiprocessing
import queue
import sys
import time
from typing import NamedTuple, Optional

from nk_keys import (
    BASE32_ALPHABET,
    ConfigError,
    KeyPair,
    KeyType,
    SearchError,
    SearchExhaustedError,
    format_keypair,
    keypair_from_raw_seed,
    keypair_from_seed,
    read_entropy,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10_000_000
SPINNERS = "⣾⣽⣻⢿⡿⣟⣯⣷"

# How long a pending send waits for an idle worker before re-checking results.
_IDLE_POLL = 0.05


class SearchJob(NamedTuple):
    key_type: KeyType
    prefix: str
    entropy: Optional[str] = None
    max_attempts: int = DEFAULT_MAX_ATTEMPTS


def normalize_prefix(prefix: str) -> str:
    """Upper-case a vanity prefix and check it can appear in a base32 key."""
    vanity = prefix.upper()
    if any(ch not in BASE32_ALPHABET for ch in vanity):
        raise ConfigError(f"Can not generate base32 encoded strings to match '{vanity}'")
    return vanity


def _vanity_worker(key_type, vanity, entropy, idle, work, found, counter):
    """Worker process: one keypair per work token until closed or matched."""
    while True:
        idle.release()
        if work.get() is None:
            return
        kp = keypair_from_raw_seed(key_type, read_entropy(entropy))
        if counter is not None:
            with counter.get_lock():
                counter.value += 1
        if kp.public_key.decode()[1:].startswith(vanity):
            # Only raw seed bytes cross the process boundary.
            found.put(kp.seed)
            return


def _poll(found) -> Optional[bytes]:
    try:
        return found.get_nowait()
    except queue.Empty:
        return None


def _send(idle, work, found, procs) -> Optional[bytes]:
    """Hand one work token to a worker that is ready to receive it.

    If a match turns up while no worker is idle, its seed is returned
    and the token is never sent.
    """
    while not idle.acquire(timeout=_IDLE_POLL):
        seed = _poll(found)
        if seed is not None:
            return seed
        if not any(p.is_alive() for p in procs):
            seed = _poll(found)
            if seed is None:
                raise SearchError("vanity search workers exited without a result")
            return seed
    work.put(True)
    return None


def _close(work, procs):
    for _ in procs:
        work.put(None)
    for p in procs:
        p.join()
    work.close()


def create_vanity_key(job: SearchJob, workers: Optional[int] = None,
                      counter=None, progress=None) -> KeyPair:
    """
    Search for a keypair whose public key, after the type character,
    starts with job.prefix.

    Each work token is exactly one generation attempt, and at most
    job.max_attempts tokens are sent no matter how many workers run.
    """
    vanity = normalize_prefix(job.prefix)
    if job.entropy:
        read_entropy(job.entropy)
    if progress is None:
        progress = sys.stderr
    n_workers = workers or multiprocessing.cpu_count()

    idle = multiprocessing.Semaphore(0)
    work = multiprocessing.Queue()
    found = multiprocessing.Queue()

    procs = []
    for _ in range(n_workers):
        p = multiprocessing.Process(
            target=_vanity_worker,
            args=(job.key_type, vanity, job.entropy, idle, work, found, counter),
        )
        p.start()
        procs.append(p)
    logger.debug("searching for %s%s with %d workers, budget %d",
                 job.key_type.prefix_char, vanity, n_workers, job.max_attempts)

    attempts = 0
    try:
        for i in range(job.max_attempts):
            progress.write(f"\r\033[mcomputing\033[m {SPINNERS[i % len(SPINNERS)]} ")
            progress.flush()
            seed = _send(idle, work, found, procs)
            if seed is None:
                attempts += 1
                seed = _poll(found)
            if seed is not None:
                progress.write("\r")
                progress.flush()
                logger.debug("match found after %d attempts", attempts)
                return keypair_from_seed(seed)

        progress.write("\r")
        progress.flush()
        logger.debug("no match after %d attempts", attempts)
        raise SearchExhaustedError(attempts)
    finally:
        _close(work, procs)
        found.close()


def run_vanity_search(key_type: KeyType, prefix: str,
                      max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                      entropy: Optional[str] = None):
    """Run a parallel vanity key search and print the result."""
    n_workers = multiprocessing.cpu_count()
    vanity = normalize_prefix(prefix)
    print(f"Searching for {key_type.prefix_char}{vanity}... using {n_workers} workers")

    t0 = time.monotonic()
    kp = create_vanity_key(
        SearchJob(key_type, vanity, entropy, max_attempts), workers=n_workers
    )
    print(f"Found in {time.monotonic() - t0:.1f}s")
    format_keypair(kp)
    return kp
