"""Best-effort pairwise interaction scan over a candidate medication list.

Every unordered pair (i, j) with i < j is classified once. Per-pair classifier
failures degrade to the fallback verdict and per-pair write failures are
logged, so one bad pair never stops the rest of the scan. Classifier calls
run concurrently behind a semaphore; results always come back in ascending
(i, j) order.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Sequence

from models import DrugInteraction
from services.interaction_classifier import InteractionClassifier, InteractionVerdict

SCAN_CONCURRENCY = max(1, int(os.getenv("RXGUARD_SCAN_CONCURRENCY", "4")))
MEMOIZE_PAIRS = os.getenv("RXGUARD_MEMOIZE_PAIRS", "0") == "1"

logger = logging.getLogger("rxguard.scanner")

PersistFn = Callable[[int, str, str, InteractionVerdict], DrugInteraction | None]


@dataclass
class DetectedInteraction:
    medication_1: str
    medication_2: str
    verdict: InteractionVerdict

    def to_payload(self) -> dict:
        data = self.verdict.to_payload()
        data["medication_1"] = self.medication_1
        data["medication_2"] = self.medication_2
        return data


@dataclass
class ScanResult:
    interactions: list[DetectedInteraction] = field(default_factory=list)
    pairs_checked: int = 0
    degraded_pairs: int = 0


def enumerate_pairs(size: int) -> list[tuple[int, int]]:
    return [(i, j) for i in range(size) for j in range(i + 1, size)]


def pair_key(drug_a: str, drug_b: str) -> tuple[str, str]:
    first, second = sorted((drug_a.strip(), drug_b.strip()))
    return first, second


async def scan_interactions(
    candidates: Sequence[str],
    user_id: int,
    *,
    classifier: InteractionClassifier,
    persist: PersistFn,
    concurrency: int | None = None,
    memoize: bool | None = None,
) -> ScanResult:
    pairs = enumerate_pairs(len(candidates))
    result = ScanResult(pairs_checked=len(pairs))
    if not pairs:
        return result

    semaphore = asyncio.Semaphore(max(1, concurrency or SCAN_CONCURRENCY))
    use_memo = MEMOIZE_PAIRS if memoize is None else memoize
    memo: dict[tuple[str, str], asyncio.Future] = {}

    async def _classify(drug_a: str, drug_b: str) -> InteractionVerdict:
        async with semaphore:
            return await classifier.classify_or_fallback(drug_a, drug_b)

    async def _evaluate(i: int, j: int) -> tuple[str, str, InteractionVerdict]:
        drug_a, drug_b = candidates[i], candidates[j]
        if use_memo:
            key = pair_key(drug_a, drug_b)
            pending = memo.get(key)
            if pending is None:
                pending = asyncio.ensure_future(_classify(drug_a, drug_b))
                memo[key] = pending
            verdict = await pending
        else:
            verdict = await _classify(drug_a, drug_b)

        if verdict.has_interaction:
            try:
                persist(user_id, drug_a, drug_b, verdict)
            except Exception:
                logger.exception("Error saving interaction for %r/%r", drug_a, drug_b)
        return drug_a, drug_b, verdict

    outcomes = await asyncio.gather(*(_evaluate(i, j) for i, j in pairs))

    for drug_a, drug_b, verdict in outcomes:
        if verdict.fallback:
            result.degraded_pairs += 1
        if verdict.has_interaction:
            result.interactions.append(
                DetectedInteraction(
                    medication_1=drug_a,
                    medication_2=drug_b,
                    verdict=verdict,
                )
            )

    logger.info(
        "interaction scan user_id=%s candidates=%d pairs=%d found=%d degraded=%d",
        user_id,
        len(candidates),
        result.pairs_checked,
        len(result.interactions),
        result.degraded_pairs,
    )
    return result
