import csv
import logging
from pathlib import Path

from .models import PassSummary, RecordOutcome

HEADERS = [
    "Record ID",
    "Project Number",
    "Branch",
    "Status",
    "Reason",
    "Photos Downloaded",
    "Files Archived",
    "Failed Downloads",
    "Ledger Failures",
]


class ReportGenerator:
    def write_pass_report(self, summary: PassSummary, output_csv: Path):
        """
        Writes one CSV row per record outcome of a pass.
        """
        output_csv.parent.mkdir(parents=True, exist_ok=True)
        logging.info(f"Writing pass report -> {output_csv}")

        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(HEADERS)
            for outcome in summary.outcomes:
                writer.writerow(self._row(outcome))

        logging.info(f"Report complete. {len(summary.outcomes)} record(s) written.")

    def _row(self, outcome: RecordOutcome) -> list:
        return [
            outcome.record_id,
            outcome.project_number,
            outcome.branch or "",
            outcome.status.value,
            outcome.reason or "",
            outcome.downloaded,
            "; ".join(str(p) for p in outcome.archived),
            "; ".join(outcome.failed_downloads),
            "; ".join(outcome.ledger_failures),
        ]
