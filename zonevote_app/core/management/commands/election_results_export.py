import logging
from pathlib import Path
from typing import override

from django.core.management.base import BaseCommand, CommandError

from core.elections_errors import ElectionUnavailableError
from core.elections_export import EXPORT_FORMATS, export_results
from core.elections_tally import tally, tally_election
from core.models import Election, ElectionType

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Export the ranked results table of an election as CSV, JSON or XLSX."

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "election_type",
            choices=ElectionType.values,
            help="Election type to export; the most recent non-draft election is used.",
        )
        parser.add_argument(
            "--election-id",
            dest="election_id",
            type=int,
            default=0,
            help="Export a specific election instead of the most recent one.",
        )
        parser.add_argument(
            "--format",
            dest="export_format",
            choices=EXPORT_FORMATS,
            default="csv",
        )
        parser.add_argument(
            "--output",
            dest="output",
            default="",
            help="File to write; defaults to stdout (required for xlsx).",
        )
        parser.add_argument(
            "--real-winners-only",
            action="store_true",
            help="Leave seats won by NOTA vacant instead of listing NOTA as a winner.",
        )

    @override
    def handle(self, *args, **options) -> None:
        election_type = str(options["election_type"])
        election_id = int(options.get("election_id") or 0)
        export_format = str(options.get("export_format") or "csv")
        output = str(options.get("output") or "").strip()
        real_winners_only = bool(options.get("real_winners_only"))

        if export_format == "xlsx" and not output:
            raise CommandError("--output is required for xlsx exports.")

        if election_id:
            election = Election.objects.of_type(election_type).filter(pk=election_id).first()
            if election is None:
                raise CommandError(f"No {election_type} election with id {election_id}.")
            result = tally_election(election=election, real_winners_only=real_winners_only)
        else:
            try:
                result = tally(election_type, real_winners_only=real_winners_only)
            except ElectionUnavailableError as exc:
                raise CommandError(str(exc)) from exc

        exported = export_results(result, export_format=export_format)

        if output:
            path = Path(output)
            if isinstance(exported, bytes):
                path.write_bytes(exported)
            else:
                path.write_text(exported, encoding="utf-8")
            self.stdout.write(f"Wrote {export_format} results for election {result.election_id} to {path}")
        else:
            self.stdout.write(exported)

        logger.info(
            "election_results_export: election=%s format=%s zones=%d",
            result.election_id,
            export_format,
            len(result.zones),
        )
