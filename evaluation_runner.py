import json
import os
import statistics
import time
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

import requests


# ============================================================
# CONFIGURATION
# ============================================================

ENDPOINT = os.getenv("EVALUATION_ENDPOINT", "http://localhost:8000/agent-rag/process")

DATASET_PATH = os.getenv("EVALUATION_DATASET", "evaluation_dataset.json")

OUTPUT_DIR = "evaluation_output"

TIMEOUT_SECONDS = 120

RETRY_COUNT = 3

RETRY_DELAY_SECONDS = 2


# ============================================================
# LOAD DATASET
# ============================================================

def load_dataset(path: str) -> List[Dict]:
    """
    Each item: content, optional question/url/device, and optionally
    expected_strategy and expected_answer_contains.
    """

    with open(path, "r", encoding="utf-8") as f:
        dataset = json.load(f)

    if not isinstance(dataset, list):
        raise ValueError("Dataset must be a list")

    if len(dataset) == 0:
        raise ValueError("Dataset empty")

    for idx, item in enumerate(dataset):
        if not item.get("content"):
            raise ValueError(f"Dataset item {idx} has no content")

    return dataset


# ============================================================
# SEND REQUEST
# ============================================================

def query_system(item: Dict) -> Dict:

    payload = {
        "content": item["content"],
        "question": item.get("question"),
        "url": item.get("url"),
        "metadata": item.get("metadata", {}),
        "device": item.get("device"),
        "preferences": item.get("preferences"),
    }

    last_error = None

    for attempt in range(RETRY_COUNT):

        try:

            start_time = time.time()

            response = requests.post(ENDPOINT, json=payload, timeout=TIMEOUT_SECONDS)

            latency = time.time() - start_time

            if response.status_code == 200:

                workflow = response.json()["workflow"]
                execution = workflow.get("execution") or {}

                return {
                    "success": True,
                    "latency": latency,
                    "strategy": workflow["final_strategy"]["key"],
                    "confidence": workflow["confidence"],
                    "fallback_used": workflow["fallback_used"],
                    "cached": workflow["content_analysis"]["cached"],
                    "content_type": workflow["content_analysis"]["profile"]["content_type"],
                    "complexity": workflow["content_analysis"]["profile"]["complexity"],
                    "answer": execution.get("answer", ""),
                    "refused": execution.get("refused", False),
                }

            last_error = f"HTTP {response.status_code}"

        except requests.RequestException as e:

            last_error = str(e)

        time.sleep(RETRY_DELAY_SECONDS)

    return {"success": False, "error": last_error}


# ============================================================
# SCORING
# ============================================================

def compute_accuracy(answer: str, expected_keywords: List[str]) -> Optional[float]:

    if not expected_keywords:
        return None

    if not answer:
        return 0.0

    answer_lower = answer.lower()

    matches = sum(1 for keyword in expected_keywords if keyword.lower() in answer_lower)

    return matches / len(expected_keywords)


def percentile(values: List[float], p: float) -> float:

    if not values:
        return 0.0

    values_sorted = sorted(values)

    k = int(round((p / 100) * (len(values_sorted) - 1)))

    return values_sorted[k]


def summarize(dataset: List[Dict], results: List[Dict], timestamp: str) -> Dict:

    completed = [r for r in results if r["success"]]
    latencies = [r["latency"] for r in completed]
    accuracies = [r["accuracy"] for r in completed if r.get("accuracy") is not None]
    with_expectation = [r for r in completed if r.get("expected_strategy")]

    total = len(dataset)

    return {
        "total_items": total,
        "success_rate": len(completed) / total,
        "fallback_rate": sum(1 for r in completed if r["fallback_used"]) / total,
        "cache_hit_rate": sum(1 for r in completed if r["cached"]) / total,
        "strategy_distribution": dict(Counter(r["strategy"] for r in completed)),
        "strategy_match_rate": (
            sum(1 for r in with_expectation if r["strategy"] == r["expected_strategy"]) / len(with_expectation)
            if with_expectation else None
        ),
        "avg_confidence": statistics.mean(r["confidence"] for r in completed) if completed else 0.0,
        "answer_accuracy": statistics.mean(accuracies) if accuracies else None,
        "avg_latency": statistics.mean(latencies) if latencies else 0.0,
        "p50_latency": percentile(latencies, 50),
        "p95_latency": percentile(latencies, 95),
        "p99_latency": percentile(latencies, 99),
        "timestamp": timestamp,
        "endpoint": ENDPOINT,
    }


# ============================================================
# MAIN EVALUATION LOGIC
# ============================================================

def run_evaluation():

    os.makedirs(OUTPUT_DIR, exist_ok=True)

    dataset = load_dataset(DATASET_PATH)

    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")

    results = []

    print("\nStarting evaluation\n")

    for idx, item in enumerate(dataset):

        label = item.get("url") or item.get("question") or f"item {idx + 1}"

        print(f"[{idx + 1}/{len(dataset)}] {label}")

        response = query_system(item)

        if not response["success"]:
            results.append({"item": idx, "success": False, "error": response["error"]})
            continue

        response["item"] = idx
        response["expected_strategy"] = item.get("expected_strategy")
        response["accuracy"] = compute_accuracy(
            response["answer"], item.get("expected_answer_contains", [])
        )

        results.append(response)

    summary = summarize(dataset, results, timestamp)

    results_path = f"{OUTPUT_DIR}/detailed_results_{timestamp}.json"
    summary_path = f"{OUTPUT_DIR}/summary_{timestamp}.json"

    with open(results_path, "w", encoding="utf-8") as f:
        json.dump(results, f, indent=2)

    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)

    print("\n=== FINAL METRICS ===\n")

    print(json.dumps(summary, indent=2))

    print(f"\nDetailed results saved: {results_path}")
    print(f"Summary saved: {summary_path}")


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":

    run_evaluation()
