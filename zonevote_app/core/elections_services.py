from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from django.db import DatabaseError, IntegrityError, connection, transaction
from django.utils import timezone

from core.elections_errors import (
    AlreadyVotedError,
    DuplicateSelectionError,
    ElectionError,
    ElectionStateError,
    ElectionUnavailableError,
    InvalidCandidateError,
    MalformedBallotError,
    NoZoneAssignedError,
    PersistenceError,
    TooManySelectionsError,
    ZoneMismatchError,
)
from core.elections_nota import get_or_create_nota_candidate, is_nota_marker
from core.models import AuditLogEntry, BallotClaim, Candidate, Election, Vote, Voter, Zone
from core.results_cache import invalidate_election_results_on_commit

logger = logging.getLogger(__name__)

PERSISTENCE_FAILURE_MESSAGE = "The ballot could not be recorded. Nothing was saved; please try again."


@dataclass(frozen=True)
class RequestProvenance:
    ip_address: str | None = None
    user_agent: str = ""


@dataclass(frozen=True)
class BallotReceipt:
    election: Election
    zone: Zone
    votes: tuple[Vote, ...]
    nota_count: int

    @property
    def votes_count(self) -> int:
        return len(self.votes)


def active_election_for_type(election_type: str, *, lock: bool = False) -> Election:
    qs = Election.objects.of_type(election_type).accepting_votes()
    if lock:
        qs = qs.select_for_update()
    election = qs.order_by("-created_at", "-id").first()
    if election is None:
        raise ElectionUnavailableError("There is no active election of this type.")
    return election


def record_audit_event(
    *,
    election: Election,
    event_type: str,
    payload: dict[str, object],
    is_public: bool,
    actor: str | None = None,
) -> AuditLogEntry:
    if actor:
        payload = {**payload, "actor": actor}
    return AuditLogEntry.objects.create(
        election=election,
        event_type=event_type,
        payload=payload,
        is_public=is_public,
    )


@transaction.atomic
def open_election(*, election: Election, actor: str | None = None) -> None:
    locked = Election.objects.select_for_update().get(pk=election.pk)
    if locked.status != Election.Status.draft:
        raise ElectionStateError("Only draft elections can be opened.")

    if Election.objects.of_type(locked.election_type).accepting_votes().exclude(pk=locked.pk).exists():
        raise ElectionStateError("Another election of this type is already active.")

    locked.status = Election.Status.active
    locked.save(update_fields=["status", "updated_at"])
    election.status = locked.status

    record_audit_event(election=locked, event_type="election_opened", payload={}, is_public=True, actor=actor)
    logger.info("Opened election %s (%s)", locked.pk, locked.election_type)


@transaction.atomic
def close_election(*, election: Election, actor: str | None = None) -> None:
    locked = Election.objects.select_for_update().get(pk=election.pk)
    if locked.status != Election.Status.active:
        raise ElectionStateError("Only active elections can be closed.")

    locked.status = Election.Status.closed
    locked.save(update_fields=["status", "updated_at"])
    election.status = locked.status

    payload = {
        "online_voters": BallotClaim.objects.filter(election=locked, channel=BallotClaim.Channel.online).count(),
        "offline_voters": BallotClaim.objects.filter(election=locked, channel=BallotClaim.Channel.offline).count(),
    }
    record_audit_event(election=locked, event_type="election_closed", payload=payload, is_public=True, actor=actor)
    logger.info("Closed election %s (%s)", locked.pk, locked.election_type)


@transaction.atomic
def declare_results(*, election: Election, actor: str | None = None) -> None:
    locked = Election.objects.select_for_update().get(pk=election.pk)
    if locked.status == Election.Status.draft:
        raise ElectionStateError("Results of a draft election cannot be declared.")

    locked.results_declared_at = timezone.now()
    locked.save(update_fields=["results_declared_at", "updated_at"])
    election.results_declared_at = locked.results_declared_at

    record_audit_event(
        election=locked,
        event_type="results_declared",
        payload={"declared_at": locked.results_declared_at.isoformat()},
        is_public=True,
        actor=actor,
    )


@transaction.atomic
def revoke_results(*, election: Election, actor: str | None = None) -> None:
    locked = Election.objects.select_for_update().get(pk=election.pk)
    if locked.results_declared_at is None:
        return

    locked.results_declared_at = None
    locked.save(update_fields=["results_declared_at", "updated_at"])
    election.results_declared_at = None

    record_audit_event(election=locked, event_type="results_revoked", payload={}, is_public=True, actor=actor)


def claim_ballot(*, election: Election, voter_id: str, channel: str) -> BallotClaim:
    """Insert the (election, voter) claim; raises IntegrityError if one exists."""
    with transaction.atomic():
        return BallotClaim.objects.create(election=election, voter_id=voter_id, channel=channel)


def _ballot_selections(*, ballot: Mapping[str, Sequence[str]], zone: Zone) -> list[str]:
    if not isinstance(ballot, Mapping):
        raise MalformedBallotError("Ballot must map zone ids to lists of selections.")

    selections: list[str] = []
    for zone_key, zone_selections in ballot.items():
        if str(zone_key).strip() != str(zone.pk):
            raise ZoneMismatchError(
                f"You can only vote within your assigned zone ({zone.name}); "
                f"the ballot references zone {zone_key!r}."
            )
        if isinstance(zone_selections, str) or not isinstance(zone_selections, Sequence):
            raise MalformedBallotError(f"Selections for zone {zone_key!r} must be a list.")
        for selection in zone_selections:
            if not isinstance(selection, str) or not selection.strip():
                raise MalformedBallotError(f"Selections for zone {zone_key!r} must be non-empty strings.")
            selections.append(selection.strip())
    return selections


def _resolve_candidates(*, candidate_keys: list[str], zone: Zone) -> dict[str, Candidate]:
    min_id, max_id = connection.ops.integer_field_range(Candidate._meta.pk.get_internal_type())
    ids_by_key: dict[str, int] = {}
    for key in candidate_keys:
        try:
            candidate_id = int(key)
        except ValueError as exc:
            raise InvalidCandidateError(f"Selection {key!r} is not a candidate of zone {zone.name}.") from exc
        if (min_id is not None and candidate_id < min_id) or (max_id is not None and candidate_id > max_id):
            raise InvalidCandidateError(f"Selection {key!r} is not a candidate of zone {zone.name}.")
        ids_by_key[key] = candidate_id

    found = Candidate.objects.select_related("zone").in_bulk(set(ids_by_key.values()))

    resolved: dict[str, Candidate] = {}
    not_approved: list[str] = []
    for key, candidate_id in ids_by_key.items():
        candidate = found.get(candidate_id)
        if candidate is None or candidate.zone_id != zone.pk or candidate.election_type != zone.election_type:
            raise InvalidCandidateError(
                f"Selection {key!r} is not a candidate of zone {zone.name}."
            )
        if not candidate.is_approved:
            not_approved.append(candidate.name)
        resolved[key] = candidate

    if not_approved:
        raise InvalidCandidateError(
            "One or more selected candidates are not approved: " + ", ".join(sorted(not_approved))
        )
    return resolved


def _submit_ballot_in_transaction(
    *,
    voter: Voter,
    election_type: str,
    ballot: Mapping[str, Sequence[str]],
    provenance: RequestProvenance,
) -> BallotReceipt:
    election = active_election_for_type(election_type)

    # Serialize concurrent submissions of the same voter on the voter row.
    locked_voter = Voter.objects.select_for_update().get(pk=voter.pk)

    if Vote.objects.filter(election=election, voter=locked_voter).exists():
        raise AlreadyVotedError("You have already voted in this election.")
    if BallotClaim.objects.filter(election=election, voter_id=locked_voter.voter_id).exists():
        raise AlreadyVotedError("A ballot has already been recorded for you in this election.")

    zone = locked_voter.zone_for(election_type)
    if zone is None:
        raise NoZoneAssignedError("You are not assigned to a zone for this election.")
    if not zone.is_active:
        raise NoZoneAssignedError(f"Your assigned zone ({zone.name}) is not taking part in this election.")

    selections = _ballot_selections(ballot=ballot, zone=zone)

    candidate_keys = [s for s in selections if not is_nota_marker(s)]
    candidates_by_key = _resolve_candidates(candidate_keys=candidate_keys, zone=zone)

    if len(selections) > zone.seats:
        raise TooManySelectionsError(
            f"Zone {zone.name} allows at most {zone.seats} selection(s), but {len(selections)} were submitted."
        )

    chosen: list[Candidate] = []
    nota_count = 0
    seen_ids: set[int] = set()
    for selection in selections:
        candidate = candidates_by_key.get(selection)
        if candidate is None or candidate.is_nota:
            nota_count += 1
            continue
        if candidate.pk in seen_ids:
            raise DuplicateSelectionError(f"Candidate {candidate.name} was selected more than once.")
        seen_ids.add(candidate.pk)
        chosen.append(candidate)

    # Unfilled seats count as NOTA.
    nota_count += zone.seats - len(selections)

    try:
        claim_ballot(election=election, voter_id=locked_voter.voter_id, channel=BallotClaim.Channel.online)
    except IntegrityError as exc:
        raise AlreadyVotedError("A ballot has already been recorded for you in this election.") from exc

    if nota_count:
        chosen.extend([get_or_create_nota_candidate(zone=zone)] * nota_count)

    submitted_at = timezone.now()
    votes = Vote.objects.bulk_create(
        [
            Vote(
                election=election,
                voter=locked_voter,
                candidate=candidate,
                created_at=submitted_at,
                ip_address=provenance.ip_address or None,
                user_agent=(provenance.user_agent or "")[:512],
            )
            for candidate in chosen
        ]
    )

    Voter.objects.filter(pk=locked_voter.pk).update(has_voted=True)
    voter.has_voted = True

    record_audit_event(
        election=election,
        event_type="ballot_submitted",
        payload={"zone_id": zone.pk, "selections": len(votes), "nota": nota_count},
        is_public=False,
    )
    invalidate_election_results_on_commit(election.pk)

    return BallotReceipt(election=election, zone=zone, votes=tuple(votes), nota_count=nota_count)


def submit_ballot(
    *,
    voter: Voter,
    election_type: str,
    ballot: Mapping[str, Sequence[str]],
    provenance: RequestProvenance | None = None,
) -> BallotReceipt:
    """Validate and record one voter's full online ballot.

    ``ballot`` maps the voter's zone id to a list of selections, each either a
    candidate id or a NOTA marker. Seats left unfilled are recorded as NOTA so
    every accepted ballot has exactly ``zone.seats`` vote rows. All rows, the
    ballot claim and the voter's ``has_voted`` flag commit together or not at
    all.
    """
    try:
        with transaction.atomic():
            receipt = _submit_ballot_in_transaction(
                voter=voter,
                election_type=election_type,
                ballot=ballot,
                provenance=provenance or RequestProvenance(),
            )
    except ElectionError:
        raise
    except DatabaseError as exc:
        logger.exception("Ballot commit failed for voter %s (%s)", voter.voter_id, election_type)
        raise PersistenceError(PERSISTENCE_FAILURE_MESSAGE) from exc

    logger.info(
        "Recorded online ballot: election=%s zone=%s voter=%s votes=%d nota=%d",
        receipt.election.pk,
        receipt.zone.pk,
        voter.voter_id,
        receipt.votes_count,
        receipt.nota_count,
    )
    return receipt
