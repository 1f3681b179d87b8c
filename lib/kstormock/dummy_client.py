#!/usr/bin/env python
"""Demo driver: ping, then write, read and delete one chunk."""

import argparse
import logging
import sys
import time
import uuid

import numpy as np

from kstorclient import CHUNK_SIZE, KStorClient, KStorError
from kstorclient.config import ClientConfig

# Configuration
PING_VALUE = "Hello world!"

logger = logging.getLogger("client")


def run_once(client: KStorClient, timings: dict):
    start = time.perf_counter()
    result = client.ping(PING_VALUE)
    timings["ping"].append((time.perf_counter() - start) * 1e6)
    logger.info(f"Ping result {result}")

    chunk_id = uuid.uuid4().bytes
    data = bytes(CHUNK_SIZE)

    start = time.perf_counter()
    client.chunk_write(chunk_id, data)
    timings["write"].append((time.perf_counter() - start) * 1e6)

    start = time.perf_counter()
    read_back = client.chunk_read(chunk_id)
    timings["read"].append((time.perf_counter() - start) * 1e6)
    if read_back != data:
        raise RuntimeError(f"Chunk {uuid.UUID(bytes=chunk_id)} read back different data")

    start = time.perf_counter()
    client.chunk_delete(chunk_id)
    timings["delete"].append((time.perf_counter() - start) * 1e6)


def log_timings(timings: dict):
    for op, samples in timings.items():
        if not samples:
            continue
        lat = np.asarray(samples)
        logger.info(
            f"{op}: n={lat.size} mean={lat.mean():.2f} µs "
            f"p50={np.percentile(lat, 50):.2f} µs p99={np.percentile(lat, 99):.2f} µs"
        )


def main(argv=None) -> int:
    config = ClientConfig.from_env()
    parser = argparse.ArgumentParser(description="Exercise a chunk storage server")
    parser.add_argument("--addr", default=config.address)
    parser.add_argument("--timeout", type=float, default=config.timeout)
    parser.add_argument("--repeat", type=int, default=1)
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    timings = {"ping": [], "write": [], "read": [], "delete": []}
    client = KStorClient(args.addr, timeout=args.timeout)
    try:
        client.connect()
    except KStorError as e:
        logger.error(f"Dial failed: {e}")
        return 1

    with client:
        for i in range(args.repeat):
            try:
                run_once(client, timings)
            except (KStorError, RuntimeError) as e:
                logger.error(f"Round {i} failed: {e}")
                return 1
        if args.repeat > 1:
            log_timings(timings)
            logger.info(f"All exchanges: {client.stats.summary()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
