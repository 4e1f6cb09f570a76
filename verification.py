"""Session verification scoring.

Decides whether a finished session looks like unaided human work. The score
combines four factors:

- paste score (40%): tiered penalties per clipboard paste, plus penalties
  for frequent large pastes and for high total pasted volume
- activity score (30%): ratio of active time to total time and the presence
  of natural breaks
- consistency score (20%): captured frames against the ~1 frame per active
  second the capture engine produces
- duration score (10%): longer sessions score higher

A session is verified only when the weighted score reaches the threshold
*and* the large / very large paste counts stay within their caps.

Everything here is a pure function of its inputs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from config import VerificationSettings
from models import (
    IdlePeriod,
    PasteEvent,
    PasteTier,
    VerificationFactors,
    VerificationInput,
    VerificationOutput,
)

DEFAULT_SETTINGS = VerificationSettings()


@dataclass(frozen=True)
class PasteAnalysis:
    score: int
    total_paste_size: int
    large_paste_count: int
    very_large_paste_count: int
    paste_frequency: float
    flags: tuple[str, ...] = ()


@dataclass(frozen=True)
class ActivityAnalysis:
    score: int
    active_ratio: float
    average_active_session_length: float
    idle_count: int
    flags: tuple[str, ...] = ()


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(score: float) -> int:
    return int(max(0, min(100, score)))


def categorize_paste(size: int, settings: VerificationSettings = DEFAULT_SETTINGS) -> PasteTier:
    if size < settings.paste_small:
        return PasteTier.SMALL
    if size < settings.paste_medium:
        return PasteTier.MEDIUM
    if size < settings.paste_large:
        return PasteTier.LARGE
    return PasteTier.VERY_LARGE


def paste_penalty(size: int, settings: VerificationSettings = DEFAULT_SETTINGS) -> int:
    tier = categorize_paste(size, settings)
    return {
        PasteTier.SMALL: settings.penalty_small,
        PasteTier.MEDIUM: settings.penalty_medium,
        PasteTier.LARGE: settings.penalty_large,
        PasteTier.VERY_LARGE: settings.penalty_very_large,
    }[tier]


def is_paste_suspicious(event: PasteEvent, settings: VerificationSettings = DEFAULT_SETTINGS) -> bool:
    return event.approximate_size >= settings.paste_medium


def is_paste_very_large(event: PasteEvent, settings: VerificationSettings = DEFAULT_SETTINGS) -> bool:
    return event.approximate_size >= settings.paste_large


def analyze_paste_events(
    events: Iterable[PasteEvent],
    total_duration: float,
    settings: VerificationSettings = DEFAULT_SETTINGS,
) -> PasteAnalysis:
    events = list(events)
    if not events:
        return PasteAnalysis(
            score=100,
            total_paste_size=0,
            large_paste_count=0,
            very_large_paste_count=0,
            paste_frequency=0.0,
        )

    total_size = sum(e.approximate_size for e in events)
    # the two counts overlap: every very large paste is also a large one
    large_count = sum(1 for e in events if is_paste_suspicious(e, settings))
    very_large_count = sum(1 for e in events if is_paste_very_large(e, settings))
    large_tier_count = large_count - very_large_count

    minutes = total_duration / 60
    frequency = len(events) / minutes if minutes > 0 else 0.0
    significant_rate = large_count / minutes if minutes > 0 else 0.0

    flags: list[str] = []
    if very_large_count:
        flags.append(f"{very_large_count} very large paste(s) detected (possible AI content)")
    if large_tier_count:
        flags.append(f"{large_tier_count} large paste(s) detected")
    if significant_rate > 1:
        flags.append("High frequency of large pastes detected")
    if total_size > 10_000:
        flags.append("Very large total paste volume detected")

    score = 100
    for event in events:
        score -= paste_penalty(event.approximate_size, settings)

    if significant_rate > 1:
        score -= 10
    if significant_rate > 2:
        score -= 5

    if total_size > 5_000:
        score -= 5
    if total_size > 10_000:
        score -= 10
    if total_size > 20_000:
        score -= 15

    return PasteAnalysis(
        score=_clamp(score),
        total_paste_size=total_size,
        large_paste_count=large_count,
        very_large_paste_count=very_large_count,
        paste_frequency=frequency,
        flags=tuple(flags),
    )


def _average_active_session_length(total_duration: float, idle_periods: list[IdlePeriod]) -> float:
    # mean gap between idle periods, from durations only; idle start/end are
    # wall-clock ms and cannot be placed on the seconds timeline
    if not idle_periods:
        return total_duration
    idle_total = sum(max(0.0, p.duration) for p in idle_periods)
    return max(0.0, total_duration - idle_total) / (len(idle_periods) + 1)


def analyze_activity_pattern(
    total_duration: float,
    active_duration: float,
    idle_periods: Iterable[IdlePeriod],
    settings: VerificationSettings = DEFAULT_SETTINGS,
) -> ActivityAnalysis:
    idle_periods = list(idle_periods)
    if total_duration <= 0:
        return ActivityAnalysis(
            score=0,
            active_ratio=0.0,
            average_active_session_length=0.0,
            idle_count=0,
            flags=("No recorded duration",),
        )

    active_ratio = active_duration / total_duration
    average_session = _average_active_session_length(total_duration, idle_periods)

    flags: list[str] = []
    if active_ratio < settings.min_activity_ratio:
        flags.append("Low activity ratio detected")
    if average_session > 3600:
        flags.append("Unusually long continuous session")
    if not idle_periods and total_duration > 1800:
        flags.append("No breaks detected in long session")

    score = 100
    if active_ratio < 0.2:
        score -= 30
    elif active_ratio < settings.min_activity_ratio:
        score -= 15

    if not idle_periods and total_duration > 3600:
        score -= 20

    if idle_periods and active_ratio > 0.5:
        score += 5

    return ActivityAnalysis(
        score=_clamp(score),
        active_ratio=active_ratio,
        average_active_session_length=average_session,
        idle_count=len(idle_periods),
        flags=tuple(flags),
    )


def consistency_score(total_duration: float, active_duration: float, frame_count: int) -> int:
    if total_duration <= 0 or frame_count <= 0:
        return 0
    ratio = min(frame_count / active_duration, 1.0) if active_duration > 0 else 1.0
    if ratio >= 0.8:
        return 100
    if ratio >= 0.6:
        return 80
    if ratio >= 0.4:
        return 60
    if ratio >= 0.2:
        return 40
    return 20


def duration_score(total_duration: float) -> int:
    minutes = total_duration / 60
    if minutes < 5:
        return 40
    if minutes < 15:
        return 60
    if minutes < 30:
        return 80
    if minutes < 60:
        return 90
    return 100


def calculate_verification(
    data: VerificationInput,
    settings: Optional[VerificationSettings] = None,
) -> VerificationOutput:
    settings = settings or DEFAULT_SETTINGS
    total = max(0.0, float(data.total_duration))
    active = max(0.0, float(data.active_duration))
    frames = max(0, int(data.frame_count))

    paste = analyze_paste_events(data.paste_events, total, settings)
    activity = analyze_activity_pattern(total, active, data.idle_periods, settings)
    consistency = consistency_score(total, active, frames)
    duration = duration_score(total)

    score = _round(
        paste.score * settings.paste_weight
        + activity.score * settings.activity_weight
        + consistency * settings.consistency_weight
        + duration * settings.duration_weight
    )
    score = _clamp(score)

    is_verified = (
        score >= settings.threshold
        and paste.large_paste_count <= settings.max_large_pastes
        and paste.very_large_paste_count <= settings.max_very_large_pastes
    )

    return VerificationOutput(
        score=score,
        is_verified=is_verified,
        factors=VerificationFactors(
            paste_score=paste.score,
            activity_score=activity.score,
            consistency_score=consistency,
            duration_score=duration,
        ),
        flags=paste.flags + activity.flags,
    )


def is_session_verified(data: VerificationInput, settings: Optional[VerificationSettings] = None) -> bool:
    return calculate_verification(data, settings).is_verified


def paste_summary(events: Iterable[PasteEvent], settings: VerificationSettings = DEFAULT_SETTINGS) -> str:
    events = list(events)
    if not events:
        return "0 Copy-Pastes"
    very_large = sum(1 for e in events if is_paste_very_large(e, settings))
    suspicious = sum(1 for e in events if is_paste_suspicious(e, settings))
    if very_large:
        return f"{len(events)} paste events ({very_large} flagged as suspicious)"
    if suspicious:
        return f"{len(events)} paste events ({suspicious} large)"
    return f"{len(events)} paste events"


def _hours_minutes(seconds: float) -> tuple[int, int]:
    seconds = int(seconds)
    return seconds // 3600, (seconds % 3600) // 60


def format_active_duration(seconds: float) -> str:
    hours, minutes = _hours_minutes(seconds)
    if hours > 0:
        return f"{hours}h {minutes}m focus"
    return f"{minutes}m focus"


def format_total_duration(seconds: float) -> str:
    hours, minutes = _hours_minutes(seconds)
    if hours > 0:
        return f"{hours}h {minutes}m session"
    return f"{minutes}m session"
