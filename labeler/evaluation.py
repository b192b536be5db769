"""Streaming statistics for testing a classifier against already-labeled items.

Every observation lands in exactly one bucket:
- match: predicted label equals the existing label (case-insensitive),
  including when neither exists
- mismatch: both exist and differ
- no prediction: an existing label but nothing predicted
- no existing: a prediction for an item without an applicable label

The counters are not synchronized; feed them from a single loop.
"""

import statistics
from typing import Optional
from pydantic import BaseModel

FAVORABLE_MATCH_RATE = 0.65
FAVORABLE_MISMATCH_RATE = 0.15


class ScoreStats(BaseModel):
    """Distribution of observed confidence scores."""

    min: float
    mean: float
    max: float
    std_dev: float  # population standard deviation

    def __str__(self) -> str:
        return f"{self.min:.4f} | {self.mean:.4f} | {self.max:.4f} | {self.std_dev:.4f}"


class EvaluationSummary(BaseModel):
    """Snapshot of the evaluation counters.

    Percentages and score stats are None ("not applicable") when there is
    nothing to divide by.
    """

    total: int
    matches: int
    mismatches: int
    no_prediction: int
    no_existing: int
    match_rate: Optional[float] = None
    mismatch_rate: Optional[float] = None
    no_prediction_rate: Optional[float] = None
    no_existing_rate: Optional[float] = None
    match_scores: Optional[ScoreStats] = None
    mismatch_scores: Optional[ScoreStats] = None

    @property
    def is_favorable(self) -> bool:
        """At least 65% matches and under 15% mismatches."""
        if self.total == 0:
            return False
        return self.match_rate >= FAVORABLE_MATCH_RATE and self.mismatch_rate < FAVORABLE_MISMATCH_RATE


def score_stats(scores: list[float]) -> Optional[ScoreStats]:
    """Min, mean, max and population std-dev, or None for no scores."""
    if not scores:
        return None
    return ScoreStats(
        min=min(scores),
        mean=statistics.fmean(scores),
        max=max(scores),
        std_dev=statistics.pstdev(scores),
    )


def format_rate(rate: Optional[float]) -> str:
    return "N/A" if rate is None else f"{rate:.2%}"


class EvaluationStats:
    """Accumulates prediction-versus-existing-label outcomes."""

    def __init__(self):
        self.matches = 0
        self.mismatches = 0
        self.no_prediction = 0
        self.no_existing = 0
        self.match_scores: list[float] = []
        self.mismatch_scores: list[float] = []

    @property
    def total(self) -> int:
        return self.matches + self.mismatches + self.no_prediction + self.no_existing

    def observe(
        self,
        predicted_label: Optional[str],
        existing_label: Optional[str],
        score: Optional[float] = None,
    ) -> str:
        """
        Record one prediction.

        Returns:
            The bucket that was incremented: "match", "mismatch",
            "no_prediction" or "no_existing"
        """
        if predicted_label is None and existing_label is not None:
            self.no_prediction += 1
            return "no_prediction"

        if predicted_label is not None and existing_label is None:
            self.no_existing += 1
            return "no_existing"

        if (predicted_label or "").lower() == (existing_label or "").lower():
            self.matches += 1
            if score is not None:
                self.match_scores.append(score)
            return "match"

        self.mismatches += 1
        if score is not None:
            self.mismatch_scores.append(score)
        return "mismatch"

    def summary(self) -> EvaluationSummary:
        total = self.total

        def rate(count: int) -> Optional[float]:
            return count / total if total else None

        return EvaluationSummary(
            total=total,
            matches=self.matches,
            mismatches=self.mismatches,
            no_prediction=self.no_prediction,
            no_existing=self.no_existing,
            match_rate=rate(self.matches),
            mismatch_rate=rate(self.mismatches),
            no_prediction_rate=rate(self.no_prediction),
            no_existing_rate=rate(self.no_existing),
            match_scores=score_stats(self.match_scores),
            mismatch_scores=score_stats(self.mismatch_scores),
        )

    def progress_lines(self) -> list[str]:
        """Running counters, as logged after every observation."""
        s = self.summary()
        return [
            f"Matches      : {s.matches} ({format_rate(s.match_rate)}) - "
            f"Min | Avg | Max | StdDev: {s.match_scores or 'N/A'}",
            f"Mismatches   : {s.mismatches} ({format_rate(s.mismatch_rate)}) - "
            f"Min | Avg | Max | StdDev: {s.mismatch_scores or 'N/A'}",
            f"No Prediction: {s.no_prediction} ({format_rate(s.no_prediction_rate)})",
            f"No Existing  : {s.no_existing} ({format_rate(s.no_existing_rate)})",
        ]
