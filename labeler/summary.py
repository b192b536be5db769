"""Run summary: report fragments collected during a run and flushed once.

In GitHub Actions the markdown goes to the step summary file
(GITHUB_STEP_SUMMARY) and step outputs to GITHUB_OUTPUT. Elsewhere the
summary is written to the log.
"""

import logging
from typing import Optional

from labeler.evaluation import EvaluationSummary, format_rate
from models.data_models import PredictionResult

logger = logging.getLogger(__name__)


def format_result(result: PredictionResult, repo_full_name: str) -> str:
    """One report entry: a header line followed by the indented workflow output."""
    header = f"[{result.kind.value} {repo_full_name}#{result.number}] {result.status}"
    if not result.output:
        return header
    return header + "\n  " + "\n  ".join(result.output)


class RunSummary:
    """Collects markdown fragments and step outputs for a single run.

    Pass one instance through a run and call write() at the end; nothing is
    written before that.
    """

    def __init__(self, summary_path: Optional[str] = None, output_path: Optional[str] = None):
        self.summary_path = summary_path
        self.output_path = output_path
        self.fragments: list[str] = []
        self.outputs: dict[str, str] = {}

    def add(self, markdown: str) -> None:
        self.fragments.append(markdown)

    def add_alert(self, message: str, kind: str = "WARNING") -> None:
        """Add a GitHub markdown alert (NOTE, TIP, WARNING, CAUTION)."""
        lines = message.splitlines() or [""]
        self.add(f"> [!{kind}]\n" + "\n".join(f"> {line}" for line in lines))

    def add_table(self, header: list[str], rows: list[list[str]]) -> None:
        lines = [
            "| " + " | ".join(header) + " |",
            "|" + "|".join(" --- " for _ in header) + "|",
        ]
        lines.extend("| " + " | ".join(row) + " |" for row in rows)
        self.add("\n".join(lines))

    def add_result(self, result: PredictionResult, repo_full_name: str) -> None:
        """Add a prediction result; failures are highlighted as warnings."""
        text = format_result(result, repo_full_name)
        if result.success:
            self.add(f"```\n{text}\n```")
        else:
            self.add_alert(text, "WARNING")

    def add_evaluation(self, summary: EvaluationSummary, item_type: str) -> None:
        """Add the results table for a classifier test run."""
        self.add(f"### {item_type} test results")

        if summary.total == 0:
            self.add_alert(f"No {item_type.lower()} were tested.", "WARNING")
            return

        self.add_alert(
            f"**{summary.total}** items were tested with **{format_rate(summary.match_rate)} matches** "
            f"and **{format_rate(summary.mismatch_rate)} mismatches**. These results are "
            + ("considered favorable." if summary.is_favorable else "not considered favorable."),
            "NOTE" if summary.is_favorable else "WARNING",
        )
        self.add_table(
            ["", "Matches", "Mismatches", "No Prediction", "No Existing Label"],
            [
                ["Count", str(summary.matches), str(summary.mismatches),
                 str(summary.no_prediction), str(summary.no_existing)],
                ["Percentage", format_rate(summary.match_rate), format_rate(summary.mismatch_rate),
                 format_rate(summary.no_prediction_rate), format_rate(summary.no_existing_rate)],
                ["Scores (min / avg / max / stddev)", str(summary.match_scores or "N/A"),
                 str(summary.mismatch_scores or "N/A"), "", ""],
            ],
        )
        self.add(
            "- **Matches**: The predicted label matches the existing label, including when no "
            "prediction is made and there is no existing label.\n"
            "- **Mismatches**: The predicted label does not match the existing label.\n"
            "- **No Prediction**: No prediction was made, but the existing item had a label.\n"
            "- **No Existing Label**: A prediction was made, but there was no existing label."
        )
        self.add_alert(
            "If the **Matches** percentage is **at least 65%** and the **Mismatches** percentage "
            "is **less than 15%**, the model testing is considered favorable.",
            "TIP",
        )

    def set_output(self, name: str, value) -> None:
        self.outputs[name] = "" if value is None else str(value)

    def render(self) -> str:
        return "\n\n".join(self.fragments) + ("\n" if self.fragments else "")

    def write(self) -> None:
        """Flush fragments and outputs. Safe to call on an empty summary."""
        if self.fragments:
            if self.summary_path:
                with open(self.summary_path, "a", encoding="utf-8") as f:
                    f.write(self.render())
                logger.debug(f"Wrote run summary to {self.summary_path}")
            else:
                logger.info("Run summary:\n" + self.render())

        if self.outputs:
            if self.output_path:
                with open(self.output_path, "a", encoding="utf-8") as f:
                    for name, value in self.outputs.items():
                        f.write(f"{name}={value}\n")
            else:
                for name, value in self.outputs.items():
                    logger.info(f"Output {name}: {value}")
