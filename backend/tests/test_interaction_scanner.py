import asyncio

import pytest

from models import RiskLevel
from services.interaction_classifier import InteractionVerdict, fallback_verdict
from services.interaction_scanner import enumerate_pairs, pair_key, scan_interactions


class StubClassifier:
    def __init__(self, verdicts=None, delays=None, failing=()):
        self.verdicts = verdicts or {}
        self.delays = delays or {}
        self.failing = set(failing)
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def classify_or_fallback(self, drug_a, drug_b):
        self.calls.append((drug_a, drug_b))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get((drug_a, drug_b), 0))
        finally:
            self.in_flight -= 1
        if (drug_a, drug_b) in self.failing:
            return fallback_verdict()
        return self.verdicts.get((drug_a, drug_b), InteractionVerdict(has_interaction=False))


class RecordingWriter:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.writes: list[tuple[int, str, str, InteractionVerdict]] = []

    def __call__(self, user_id, drug_a, drug_b, verdict):
        if (drug_a, drug_b) in self.failing:
            raise RuntimeError("database is locked")
        self.writes.append((user_id, drug_a, drug_b, verdict))
        return None


def _positive(level=RiskLevel.HIGH, percentage=75):
    return InteractionVerdict(
        has_interaction=True,
        risk_level=level,
        risk_percentage=percentage,
        description="interaction",
        severity="monitor",
    )


def test_enumerate_pairs_ascending():
    assert enumerate_pairs(3) == [(0, 1), (0, 2), (1, 2)]
    assert len(enumerate_pairs(6)) == 15
    assert enumerate_pairs(1) == []
    assert enumerate_pairs(0) == []


def test_pair_key_is_order_independent():
    assert pair_key("Warfarin", " Aspirin") == pair_key("Aspirin", "Warfarin")


@pytest.mark.anyio
async def test_every_unordered_pair_checked_once_in_order():
    classifier = StubClassifier()
    writer = RecordingWriter()

    result = await scan_interactions(["A", "B", "C"], 1, classifier=classifier, persist=writer)

    assert classifier.calls == [("A", "B"), ("A", "C"), ("B", "C")]
    assert result.pairs_checked == 3
    assert result.interactions == []
    assert writer.writes == []


@pytest.mark.anyio
@pytest.mark.parametrize("candidates", [[], ["Aspirin"]])
async def test_degenerate_sizes_make_no_calls(candidates):
    classifier = StubClassifier()
    writer = RecordingWriter()

    result = await scan_interactions(candidates, 1, classifier=classifier, persist=writer)

    assert classifier.calls == []
    assert writer.writes == []
    assert result.interactions == []
    assert result.pairs_checked == 0


@pytest.mark.anyio
async def test_failed_pair_falls_back_and_scan_continues():
    classifier = StubClassifier(
        verdicts={("A", "C"): _positive(), ("B", "C"): _positive(RiskLevel.LOW, 20)},
        failing={("A", "B")},
    )
    writer = RecordingWriter()

    result = await scan_interactions(["A", "B", "C"], 1, classifier=classifier, persist=writer)

    assert len(classifier.calls) == 3
    assert [(i.medication_1, i.medication_2) for i in result.interactions] == [("A", "C"), ("B", "C")]
    assert result.degraded_pairs == 1


@pytest.mark.anyio
async def test_only_positive_verdicts_are_persisted():
    classifier = StubClassifier(verdicts={("B", "C"): _positive()})
    writer = RecordingWriter()

    result = await scan_interactions(["A", "B", "C"], 7, classifier=classifier, persist=writer)

    assert [(w[0], w[1], w[2]) for w in writer.writes] == [(7, "B", "C")]
    assert len(result.interactions) == 1
    assert result.interactions[0].to_payload()["risk_level"] == "high"


@pytest.mark.anyio
async def test_write_failure_still_reports_interaction_and_continues():
    classifier = StubClassifier(verdicts={("A", "B"): _positive(), ("A", "C"): _positive()})
    writer = RecordingWriter(failing={("A", "B")})

    result = await scan_interactions(["A", "B", "C"], 1, classifier=classifier, persist=writer)

    assert [(w[1], w[2]) for w in writer.writes] == [("A", "C")]
    assert [(i.medication_1, i.medication_2) for i in result.interactions] == [("A", "B"), ("A", "C")]


@pytest.mark.anyio
async def test_results_keep_pair_order_when_calls_finish_out_of_order():
    classifier = StubClassifier(
        verdicts={("A", "B"): _positive(), ("A", "C"): _positive(), ("B", "C"): _positive()},
        delays={("A", "B"): 0.05, ("A", "C"): 0.02},
    )
    writer = RecordingWriter()

    result = await scan_interactions(["A", "B", "C"], 1, classifier=classifier, persist=writer, concurrency=3)

    assert [(i.medication_1, i.medication_2) for i in result.interactions] == [("A", "B"), ("A", "C"), ("B", "C")]
    assert len(writer.writes) == 3


@pytest.mark.anyio
async def test_concurrency_is_bounded():
    names = [f"Drug{i}" for i in range(6)]
    classifier = StubClassifier(delays={(a, b): 0.01 for a in names for b in names})

    result = await scan_interactions(names, 1, classifier=classifier, persist=RecordingWriter(), concurrency=2)

    assert result.pairs_checked == 15
    assert len(classifier.calls) == 15
    assert classifier.max_in_flight <= 2


@pytest.mark.anyio
async def test_duplicate_names_are_classified_as_normal_pairs():
    classifier = StubClassifier(verdicts={("Aspirin", "Aspirin"): _positive()})
    writer = RecordingWriter()

    result = await scan_interactions(["Aspirin", "Aspirin"], 1, classifier=classifier, persist=writer)

    assert classifier.calls == [("Aspirin", "Aspirin")]
    assert len(writer.writes) == 1
    assert len(result.interactions) == 1


@pytest.mark.anyio
async def test_memoized_scan_reuses_verdict_for_repeated_pair():
    classifier = StubClassifier(verdicts={("Aspirin", "Warfarin"): _positive()})
    writer = RecordingWriter()

    result = await scan_interactions(
        ["Aspirin", "Warfarin", "Aspirin"],
        1,
        classifier=classifier,
        persist=writer,
        memoize=True,
    )

    # (Aspirin, Warfarin) and (Warfarin, Aspirin) share one call
    assert classifier.calls == [("Aspirin", "Warfarin"), ("Aspirin", "Aspirin")]
    assert [(w[1], w[2]) for w in writer.writes] == [("Aspirin", "Warfarin"), ("Warfarin", "Aspirin")]
    assert len(result.interactions) == 2


@pytest.mark.anyio
async def test_detected_interaction_payload_shape():
    classifier = StubClassifier(verdicts={("Aspirin", "Warfarin"): _positive()})

    result = await scan_interactions(["Aspirin", "Warfarin"], 1, classifier=classifier, persist=RecordingWriter())

    assert result.interactions[0].to_payload() == {
        "hasInteraction": True,
        "risk_level": "high",
        "risk_percentage": 75,
        "description": "interaction",
        "severity": "monitor",
        "medication_1": "Aspirin",
        "medication_2": "Warfarin",
    }
