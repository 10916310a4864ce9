import csv
import logging
from pathlib import Path
from typing import List

from .models import OutcomeStatus, RunSummary

class ReportGenerator:
    def __init__(self, summary: RunSummary):
        self.summary = summary

    def format_summary(self) -> str:
        """Human readable run summary: counts, then every failed file with its cause."""
        s = self.summary
        lines: List[str] = [
            "",
            "Processing cancelled!" if s.cancelled else "Processing complete!",
            f"Files processed: {len(s.outcomes)}",
            f"Files organized: {len(s.organized)}",
            f"Duplicates:      {len(s.duplicates)}",
            f"Errors:          {len(s.failed)}",
        ]
        if s.not_processed:
            lines.append(f"Not processed:   {s.not_processed}")

        if s.failed:
            lines.append("")
            lines.append("Errors:")
            for outcome in s.failed:
                kind = outcome.error_kind.value if outcome.error_kind else "unknown"
                lines.append(f"  {outcome.source}: [{kind}] {outcome.message or 'Unknown error'}")

        return "\n".join(lines)

    def write_csv(self, output_csv: Path):
        """
        One row per source file: status, destination (or canonical copy for
        duplicates), timestamp provenance and the failure cause.
        """
        headers = [
            "Source Path",
            "Status",
            "Destination Path",
            "Canonical Destination (If Duplicate)",
            "Timestamp Source",
            "Error Kind",
            "Notes",
        ]

        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(headers)

            for o in sorted(self.summary.outcomes, key=lambda o: str(o.source)):
                writer.writerow([
                    str(o.source),
                    o.status.value,
                    o.destination if o.status == OutcomeStatus.ORGANIZED else "",
                    o.destination if o.status == OutcomeStatus.DUPLICATE else "",
                    o.provenance or "",
                    o.error_kind.value if o.error_kind else "",
                    o.message or "",
                ])

        logging.info(f"Report written: {output_csv} ({len(self.summary.outcomes)} rows)")
