from typing import override

from django.core.management.base import BaseCommand, CommandError

from core.elections_errors import ElectionUnavailableError
from core.elections_offline import merge_offline_votes
from core.elections_tally import current_election_for_type
from core.models import ElectionType, OfflineVote


class Command(BaseCommand):
    help = "Mark all pending offline ballots of the current election as merged."

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument("election_type", choices=ElectionType.values)
        parser.add_argument(
            "--actor",
            default="manage.py",
            help="Name recorded in the audit log as the merging administrator.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report how many rows are pending without merging them.",
        )

    @override
    def handle(self, *args, **options) -> None:
        election_type = str(options["election_type"])
        actor = str(options.get("actor") or "").strip() or "manage.py"
        dry_run = bool(options.get("dry_run"))

        try:
            election = current_election_for_type(election_type)
        except ElectionUnavailableError as exc:
            raise CommandError(str(exc)) from exc

        if dry_run:
            pending = OfflineVote.objects.filter(election=election, is_merged=False)
            voters = pending.values("voter_id").distinct().count()
            self.stdout.write(f"{pending.count()} pending offline row(s) from {voters} voter(s) in election {election.pk}")
            return

        report = merge_offline_votes(election=election, actor=actor)
        self.stdout.write(
            f"Merged {report.rows_merged} offline row(s) from {report.voters_merged} voter(s) in election {election.pk}"
        )
