"""
KMS Codec Benchmark CLI.

Usage:
    kms-codec-benchmark

Or run directly:
    python -m kms_codec.benchmark

By default the benchmark runs against an in-memory key transport. Set
KMS_CODEC_KEY_IDS and KMS_CODEC_REGION (environment or .env file) to run it
against AWS KMS instead.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from kms_codec.codec import create_codec
from kms_codec.config import ENV_PREFIX, CodecConfig
from kms_codec.transport import InMemoryKeyTransport, KeyTransport

BENCHMARK_KEY_ID = "alias/kms-codec-benchmark"


@dataclass
class BenchmarkResult:
    """Timings and cache counters for one benchmark run."""

    messages: int
    contexts: int
    encode_seconds: float
    decode_seconds: float
    cache_hits: int
    cache_misses: int
    cache_evictions: int

    @property
    def encode_rate(self) -> float:
        return self.messages / self.encode_seconds if self.encode_seconds else 0.0

    @property
    def decode_rate(self) -> float:
        return self.messages / self.decode_seconds if self.decode_seconds else 0.0


def run_benchmark(
    messages: int = 1000,
    contexts: int = 1,
    config: Optional[CodecConfig] = None,
    transport: Optional[KeyTransport] = None,
) -> BenchmarkResult:
    """
    Encode and decode ``messages`` events spread across ``contexts`` encryption contexts.

    Each context gets its own codec sharing one transport, so every context
    negotiates its own data key.
    """
    if config is None:
        config = CodecConfig(key_ids=[BENCHMARK_KEY_ID], region="us-east-1")
        transport = transport or InMemoryKeyTransport([BENCHMARK_KEY_ID])

    codecs = [
        create_codec(
            config.model_copy(
                update={
                    "encryption_context": dict(
                        config.encryption_context, benchmark_context=str(i)
                    )
                }
            ),
            transport=transport,
        )
        for i in range(contexts)
    ]

    blobs = []
    encode_start = time.perf_counter()
    for i in range(messages):
        codec = codecs[i % contexts]
        blobs.append((codec, codec.encode({"message": f"benchmark message {i}"})))
    encode_seconds = time.perf_counter() - encode_start

    decode_start = time.perf_counter()
    for codec, blob in blobs:
        for _event in codec.decode(blob):
            pass
    decode_seconds = time.perf_counter() - decode_start

    hits = misses = evictions = 0
    for codec in codecs:
        stats = codec.materials_manager.cache.stats
        hits += stats.hits
        misses += stats.misses
        evictions += stats.evictions

    return BenchmarkResult(
        messages=messages,
        contexts=contexts,
        encode_seconds=encode_seconds,
        decode_seconds=decode_seconds,
        cache_hits=hits,
        cache_misses=misses,
        cache_evictions=evictions,
    )


def main() -> None:
    """Run the KMS codec benchmark."""
    print("=== KMS Codec Benchmark ===\n")

    # Load environment variables
    load_dotenv()

    config = None
    if os.environ.get(f"{ENV_PREFIX}KEY_IDS"):
        config = CodecConfig.from_env()
        print(f"[STARTUP] Using AWS KMS in {config.region} with {len(config.key_ids)} key(s)")
    else:
        print("[STARTUP] Using in-memory key transport")

    try:
        user_input = input("Enter number of messages to test (default: 1000): ").strip()
        messages = int(user_input) if user_input else 1000
    except ValueError:
        messages = 1000

    try:
        user_input = input("Enter number of encryption contexts (default: 1): ").strip()
        contexts = max(int(user_input), 1) if user_input else 1
    except ValueError:
        contexts = 1
    print(f"Testing with {messages} messages across {contexts} context(s)\n")

    result = run_benchmark(messages=messages, contexts=contexts, config=config)

    print("=" * 70)
    print("                    BENCHMARK RESULTS")
    print("=" * 70 + "\n")
    print(f"[PERF] Encode: {result.encode_seconds * 1000:.3f}ms | Rate: {result.encode_rate:.2f} ops/sec")
    print(f"[PERF] Decode: {result.decode_seconds * 1000:.3f}ms | Rate: {result.decode_rate:.2f} ops/sec")
    print(f"[CACHE] Hits: {result.cache_hits} | Misses: {result.cache_misses} | Evictions: {result.cache_evictions}")


if __name__ == "__main__":
    main()
