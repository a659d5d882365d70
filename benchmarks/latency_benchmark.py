import time
import statistics
import concurrent.futures

from fraud_sentinel.governance.audit.trail import AuditTrail
from fraud_sentinel.orchestration.engine import RiskEngine

BENIGN_MESSAGES = [
    "Hello, what is my account balance?",
    "Can you show my recent transactions",
    "Thanks, that is all",
]


def create_engine():
    return RiskEngine(audit=AuditTrail(use_background_writer=False))


def run_latency_benchmark(iterations=300):
    engine = create_engine()

    print(f"--- Latency Benchmark ({iterations} iterations) ---")

    latencies = []

    # Warmup
    engine.analyze("bench-warmup", BENIGN_MESSAGES[0])

    for i in range(iterations):
        text = BENIGN_MESSAGES[i % len(BENIGN_MESSAGES)]
        start_time = time.perf_counter()
        engine.analyze(f"bench-{i // len(BENIGN_MESSAGES)}", text)
        end_time = time.perf_counter()

        latency_ms = (end_time - start_time) * 1000
        latencies.append(latency_ms)

        if (i + 1) % 100 == 0:
            print(f"  Completed {i + 1}/{iterations} iterations")

    percentiles = statistics.quantiles(latencies, n=100)
    print("\nLatency Results:")
    print(f"  Mean:   {statistics.mean(latencies):.3f} ms")
    print(f"  Median: {statistics.median(latencies):.3f} ms")
    print(f"  P95:    {percentiles[94]:.3f} ms")
    print(f"  P99:    {percentiles[98]:.3f} ms")
    print("-" * 40)
    engine.shutdown()
    return latencies


def run_throughput_benchmark(total_requests=2000, concurrent_sessions=10):
    engine = create_engine()

    print(f"\n--- Throughput Benchmark ({total_requests} requests, {concurrent_sessions} sessions) ---")

    start_time = time.perf_counter()

    with concurrent.futures.ThreadPoolExecutor(max_workers=concurrent_sessions) as executor:
        futures = [
            executor.submit(
                engine.analyze,
                f"session-{i % concurrent_sessions}",
                BENIGN_MESSAGES[i % len(BENIGN_MESSAGES)],
            )
            for i in range(total_requests)
        ]
        concurrent.futures.wait(futures)

    end_time = time.perf_counter()
    total_time = end_time - start_time

    throughput = total_requests / total_time

    print(f"\nThroughput Results:")
    print(f"  Total Time: {total_time:.2f} s")
    print(f"  Throughput: {throughput:.2f} messages/sec")
    print("-" * 40)
    engine.shutdown()
    return throughput


if __name__ == "__main__":
    run_latency_benchmark()
    run_throughput_benchmark()
