"""
Mileage candidate resolver.

A single listing page often exposes several odometer readings (embedded
JSON attributes, spec tables, free text in the title or description). This
module picks the most plausible one and reports inconsistencies as red flags.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from vehicle_scout.models import (
    FlagType,
    MileageCandidate,
    MileageConfidence,
    RedFlag,
    Severity,
)

logger = logging.getLogger(__name__)


MAX_PLAUSIBLE_KM = 1_000_000
TAMPERING_THRESHOLD_KM = 500
LOW_USAGE_THRESHOLD_KM = 2_000
KM_PER_YEAR = 15_000
BAND_TOLERANCE = 0.5
DISCREPANCY_RATIO = 2.0

SOURCE_PRIORITY = {
    'NEXT_DATA.attributes.mileage': 10,
    'NEXT_DATA.vehicle.attributes.mileage': 10,
    'NEXT_DATA.vehicle.mileage': 9,
    'NEXT_DATA.mileage': 8,
    'STRUCTURED.mileage': 8,
    'DOM.specs.kilometrage': 7,
    'DOM.data-mileage': 6,
    'DOM.regex': 5,
    'TEXT_REGEX(description)': 5,
    'TEXT_REGEX(title)': 4,
    'JSON_LD': 3,
    'AI': 2,
    'DOM': 2,
}

# Fallback per source class when the exact path is unknown
CLASS_PRIORITY = {
    'NEXT_DATA': 8,
    'STRUCTURED': 8,
    'INITIAL_STATE': 8,
    'DOM': 2,
    'TEXT_REGEX': 4,
    'JSON_LD': 3,
    'AI': 2,
}


@dataclass
class MileageResolution:
    """Result of resolving one listing's mileage candidates."""
    final: Optional[int]
    confidence: MileageConfidence
    notes: List[str] = field(default_factory=list)
    red_flags: List[RedFlag] = field(default_factory=list)


def source_class(source: str) -> str:
    """Coarse extraction-path family ("NEXT_DATA.vehicle.mileage" -> "NEXT_DATA")."""
    return (source or 'OTHER').split('.')[0].split('(')[0]


def source_priority(source: str) -> int:
    """Reliability rank of an extraction path (higher is more reliable)."""
    if source in SOURCE_PRIORITY:
        return SOURCE_PRIORITY[source]
    return CLASS_PRIORITY.get(source_class(source), 1)


def _flag(severity: Severity, message: str, **details) -> RedFlag:
    return RedFlag(
        type=FlagType.MILEAGE_INCONSISTENT,
        severity=severity,
        message=message,
        details=details,
    )


def resolve(
    candidates: Sequence[MileageCandidate],
    year: Optional[int] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    current_year: Optional[int] = None,
) -> MileageResolution:
    """
    Pick the most plausible odometer reading among candidates.

    Args:
        candidates: Readings extracted from the listing
        year: Registration year, used to derive the vehicle age
        title: Listing title (for diagnostics only)
        description: Listing description (for diagnostics only)
        current_year: Reference year (defaults to today)

    Returns:
        MileageResolution with the selected value, its confidence, notes and
        mileage_inconsistent red flags
    """
    current_year = current_year or datetime.now().year
    age = current_year - year if year else None
    notes: List[str] = []
    flags: List[RedFlag] = []

    valid = []
    for candidate in candidates:
        if candidate.value <= 0 or candidate.value > MAX_PLAUSIBLE_KM:
            notes.append(f"rejected impossible value {candidate.value} from {candidate.source}")
            continue
        valid.append(candidate)

    if not valid:
        return MileageResolution(final=None, confidence=MileageConfidence.LOW, notes=notes)

    if len(valid) == 1:
        return _resolve_single(valid[0], age, notes, flags)

    plausible = []
    for candidate in valid:
        if age is not None and age >= 1 and candidate.value < TAMPERING_THRESHOLD_KM:
            flags.append(_flag(
                Severity.CRITICAL,
                f"Mileage of {candidate.value} km on a {age}-year-old vehicle",
                value=candidate.value,
                source=candidate.source,
                age=age,
            ))
            notes.append(f"excluded {candidate.value} km from {candidate.source} (possible tampering)")
            continue
        if age is not None and age >= 2 and candidate.value < LOW_USAGE_THRESHOLD_KM:
            flags.append(_flag(
                Severity.HIGH,
                f"Very low mileage ({candidate.value} km) for a {age}-year-old vehicle",
                value=candidate.value,
                source=candidate.source,
                age=age,
            ))
            notes.append(f"excluded {candidate.value} km from {candidate.source} (too low for age)")
            continue
        plausible.append(candidate)

    if not plausible:
        if not any(flag.severity == Severity.CRITICAL for flag in flags):
            flags.append(_flag(
                Severity.CRITICAL,
                "No plausible mileage among extracted readings",
                values=[c.value for c in valid],
                age=age,
            ))
        return MileageResolution(final=None, confidence=MileageConfidence.LOW, notes=notes, red_flags=flags)

    ranked = _rank(plausible, age)
    selected = ranked[0]
    notes.append(f"selected {selected.value} km from {selected.source} among {len(plausible)} candidates")

    if len(ranked) >= 2:
        first, second = ranked[0].value, ranked[1].value
        if max(first, second) > DISCREPANCY_RATIO * min(first, second):
            flags.append(_flag(
                Severity.HIGH,
                f"Conflicting mileage readings: {first} km vs {second} km",
                values=[first, second],
                sources=[ranked[0].source, ranked[1].source],
            ))

    if age is None:
        confidence = MileageConfidence.LOW
    elif (
        len({c.value for c in plausible}) == 1
        and len({source_class(c.source) for c in plausible}) == 1
        and _in_band(selected.value, age)
    ):
        confidence = MileageConfidence.HIGH
    else:
        confidence = MileageConfidence.MEDIUM

    if title or description:
        logger.debug(f"Resolved mileage {selected.value} km ({confidence.value}) for '{(title or '')[:60]}'")

    return MileageResolution(final=selected.value, confidence=confidence, notes=notes, red_flags=flags)


def _resolve_single(
    candidate: MileageCandidate,
    age: Optional[int],
    notes: List[str],
    flags: List[RedFlag],
) -> MileageResolution:
    value = candidate.value

    # A lone reading cannot be cross-checked, so a too-low one is discarded
    too_low = age is not None and (
        (age >= 1 and value < TAMPERING_THRESHOLD_KM)
        or (age >= 2 and value < LOW_USAGE_THRESHOLD_KM)
    )
    if too_low:
        flags.append(_flag(
            Severity.CRITICAL,
            f"Mileage of {value} km on a {age}-year-old vehicle",
            value=value,
            source=candidate.source,
            age=age,
        ))
        notes.append(f"discarded {value} km from {candidate.source} (possible tampering)")
        return MileageResolution(final=None, confidence=MileageConfidence.LOW, notes=notes, red_flags=flags)

    confidence = MileageConfidence.HIGH if age is not None else MileageConfidence.LOW
    notes.append(f"single reading {value} km from {candidate.source}")
    return MileageResolution(final=value, confidence=confidence, notes=notes, red_flags=flags)


def _expected_km(age: int) -> int:
    return max(age, 1) * KM_PER_YEAR


def _in_band(value: int, age: Optional[int]) -> bool:
    if age is None:
        return True
    expected = _expected_km(age)
    return (1 - BAND_TOLERANCE) * expected <= value <= (1 + BAND_TOLERANCE) * expected


def _rank(candidates: List[MileageCandidate], age: Optional[int]) -> List[MileageCandidate]:
    """Order candidates: in-band first, then source priority, then closeness to expected."""
    if age is None:
        return sorted(candidates, key=lambda c: -source_priority(c.source))

    expected = _expected_km(age)
    return sorted(
        candidates,
        key=lambda c: (
            not _in_band(c.value, age),
            -source_priority(c.source),
            abs(c.value - expected),
        ),
    )
