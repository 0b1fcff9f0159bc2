"""Tabular export of a tally for offline archiving and publication."""

from __future__ import annotations

from tablib import Dataset

from core.elections_tally import TallyResult

EXPORT_FORMATS: tuple[str, ...] = ("csv", "json", "xlsx")

RESULTS_HEADERS: tuple[str, ...] = (
    "zone_code",
    "zone_name",
    "seats",
    "rank",
    "candidate_id",
    "candidate_name",
    "is_nota",
    "online_votes",
    "offline_votes",
    "votes",
    "winner",
)


def results_dataset(result: TallyResult) -> Dataset:
    dataset = Dataset(headers=list(RESULTS_HEADERS), title="results")
    for zone in result.zones:
        winner_ids = {w.id for w in zone.winners}
        for candidate in zone.candidates:
            dataset.append(
                [
                    zone.code,
                    zone.name,
                    zone.seats,
                    candidate.rank,
                    candidate.id,
                    candidate.name,
                    candidate.is_nota,
                    candidate.online_votes,
                    candidate.offline_votes,
                    candidate.votes,
                    candidate.id in winner_ids,
                ]
            )
    return dataset


def export_results(result: TallyResult, *, export_format: str) -> str | bytes:
    if export_format not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format {export_format!r}; expected one of {', '.join(EXPORT_FORMATS)}.")
    return results_dataset(result).export(export_format)
