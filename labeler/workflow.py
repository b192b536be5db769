"""Per-item prediction workflow: decide which label (if any) to apply, then apply it.

Each record goes through these checks in order and ends in exactly one
Decision:

1. labels were truncated by pagination   -> SkippedTooManyLabels
2. author is excluded                    -> SkippedAuthorExcluded
3. an applicable label already exists    -> SkippedHasApplicableLabel
   (a redundant default label is removed)
4. classifier returns nothing            -> NoPredictionMade
5. best candidate meets the threshold    -> AppliedPrediction
   (a default label is removed once the prediction is applied)
6. a default label is configured         -> AppliedDefault
7. otherwise                             -> NoPredictionMade

Any failed add becomes MutationFailed. In test mode every mutation is
simulated, so the decision logic runs in full without touching GitHub.
"""

import logging
from typing import Optional, Protocol, Sequence

from classifier.classifier import Classifier, rank_predictions
from models.config_models import PredictionSettings
from models.data_models import (
    Decision,
    Issue,
    ItemKind,
    LabelScore,
    MutationOutcome,
    PredictionResult,
)

logger = logging.getLogger(__name__)

TOP_PREDICTIONS = 3


class LabelGateway(Protocol):
    """The label mutations the workflow needs (GitHubFetcher satisfies this)."""

    def add_label(
        self, org: str, repo: str, kind: ItemKind, number: int, label: str, retries: Sequence[int]
    ) -> MutationOutcome:
        ...

    def remove_label(
        self, org: str, repo: str, kind: ItemKind, number: int, label: str, retries: Sequence[int]
    ) -> MutationOutcome:
        ...


def select_best_prediction(
    predictions: Sequence[LabelScore],
    label_predicate,
    threshold: float,
) -> tuple[list[LabelScore], Optional[LabelScore]]:
    """
    Filter, rank and threshold classifier candidates.

    Returns:
        (top, best): up to three eligible candidates by descending score, and
        the highest one whose score is at least the threshold (or None)
    """
    eligible = [p for p in predictions if label_predicate(p.label)]
    top = rank_predictions(eligible)[:TOP_PREDICTIONS]
    best = next((p for p in top if p.score >= threshold), None)
    return top, best


def predict_item(
    record: Issue,
    kind: ItemKind,
    classifier: Classifier,
    settings: PredictionSettings,
    gateway: LabelGateway,
) -> PredictionResult:
    """
    Run the prediction workflow for one record.

    Args:
        record: Freshly fetched issue or pull request
        kind: Whether the record is an issue or a pull request
        classifier: Scoring backend, called at most once
        settings: Read-only prediction settings shared by all items
        gateway: Performs label mutations (skipped when settings.test is set)

    Returns:
        The item's single PredictionResult
    """
    org, repo = settings.org, settings.repo
    default_label = settings.default_label
    label_predicate = settings.label_predicate
    output: list[str] = []

    def mutate(operation, label: str) -> MutationOutcome:
        if settings.test:
            return MutationOutcome.ok()
        return operation(org, repo, kind, record.number, label, settings.retries)

    def finish(decision: Decision, status: str, **fields) -> PredictionResult:
        result = PredictionResult(
            number=record.number, kind=kind, decision=decision, status=status, output=output, **fields
        )
        logger.debug(f"{kind.value} #{record.number}: {decision.value}")
        return result

    if record.has_more_labels:
        return finish(
            Decision.SKIPPED_TOO_MANY_LABELS,
            "No action taken. Too many labels applied already; "
            "cannot be sure no applicable label is already applied.",
        )

    if settings.is_excluded_author(record.author):
        return finish(
            Decision.SKIPPED_AUTHOR_EXCLUDED,
            f"No action taken. Author '{record.author}' is in the excluded list.",
        )

    has_default_label = default_label is not None and record.has_label(default_label)
    applicable_label = record.first_label(label_predicate)

    if applicable_label is not None:
        output.append(f"Applicable label '{applicable_label}' already exists.")
        removal = None

        if has_default_label:
            removal = mutate(gateway.remove_label, default_label)
            output.append(removal.error or f"Removed default label '{default_label}'.")

        return finish(
            Decision.SKIPPED_HAS_APPLICABLE_LABEL,
            "No prediction needed.",
            success=removal is None or removal.success,
            removal=removal,
            error=removal.error if removal else None,
        )

    predictions = classifier.predict(record)

    if not predictions:
        return finish(Decision.NO_PREDICTION_MADE, "No prediction was made.")

    top, best = select_best_prediction(predictions, label_predicate, settings.threshold)

    output.append("Label predictions:")
    output.extend(f"  '{p.label}' - Score: {p.score:.4f}" for p in top)
    output.append(
        f"Label '{best.label}' meets threshold of {settings.threshold}."
        if best is not None
        else f"No label meets the threshold of {settings.threshold}."
    )

    if best is not None:
        outcome = mutate(gateway.add_label, best.label)

        if not outcome.success:
            output.append(outcome.error)
            return finish(
                Decision.MUTATION_FAILED,
                "Error occurred during prediction.",
                success=False,
                label=best.label,
                score=best.score,
                error=outcome.error,
                top_predictions=top,
            )

        output.append(f"Added label '{best.label}'." + (" (test mode)" if settings.test else ""))
        removal = None

        if has_default_label:
            removal = mutate(gateway.remove_label, default_label)
            output.append(removal.error or f"Removed default label '{default_label}'.")

        return finish(
            Decision.APPLIED_PREDICTION,
            f"Predicted: {best.label}",
            success=removal is None or removal.success,
            label=best.label,
            score=best.score,
            removal=removal,
            error=removal.error if removal else None,
            top_predictions=top,
        )

    if default_label is not None:
        if has_default_label:
            output.append(f"Default label '{default_label}' is already applied.")
        else:
            outcome = mutate(gateway.add_label, default_label)

            if not outcome.success:
                output.append(outcome.error)
                return finish(
                    Decision.MUTATION_FAILED,
                    "Error occurred applying the default label.",
                    success=False,
                    label=default_label,
                    error=outcome.error,
                    top_predictions=top,
                )

            output.append(f"Applied default label '{default_label}'." + (" (test mode)" if settings.test else ""))

        return finish(
            Decision.APPLIED_DEFAULT,
            f"Applied default label: {default_label}",
            label=default_label,
            top_predictions=top,
        )

    return finish(
        Decision.NO_PREDICTION_MADE,
        "No label meets the threshold; no action taken.",
        top_predictions=top,
    )
