from __future__ import annotations

from typing import Iterable


def split_extracted_lines(text: str) -> list[str]:
    """Split raw extraction output into trimmed, non-blank medication names."""
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def build_candidate_set(existing_active: Iterable[str], extracted: Iterable[str]) -> list[str]:
    """Existing actives first, then extracted names. Duplicates are kept."""
    candidates = list(existing_active)
    candidates.extend(name.strip() for name in extracted if name and name.strip())
    return candidates
