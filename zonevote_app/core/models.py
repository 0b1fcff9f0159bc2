from __future__ import annotations

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone


class ElectionType(models.TextChoices):
    yuva_pankh = "yuva_pankh", "Yuva Pankh Samiti"
    karobari = "karobari", "Karobari Samiti"
    trustees = "trustees", "Trust Mandal"


class ElectionQuerySet(models.QuerySet["Election"]):
    def of_type(self, election_type: str) -> ElectionQuerySet:
        return self.filter(election_type=election_type)

    def accepting_votes(self) -> ElectionQuerySet:
        # Raw value: the Status enum is declared on the model below.
        return self.filter(status="active")

    def current_for_type(self, election_type: str) -> Election | None:
        """Most recent non-draft election of the type; what reports are built from."""
        return (
            self.of_type(election_type)
            .exclude(status="draft")
            .order_by("-created_at", "-id")
            .first()
        )


class Election(models.Model):
    class Status(models.TextChoices):
        draft = "draft", "Draft"
        active = "active", "Active"
        closed = "closed", "Closed"

    name = models.CharField(max_length=255)
    election_type = models.CharField(max_length=32, choices=ElectionType.choices, db_index=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.draft)

    # Set by the results declaration workflow; gates the public winners feed.
    results_declared_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ElectionQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at", "id")
        constraints = [
            models.UniqueConstraint(
                fields=["election_type"],
                name="uniq_election_active_per_type",
                condition=Q(status="active"),
            ),
        ]
        permissions = [
            ("view_results", "Can view election results"),
            ("declare_results", "Can declare or revoke election results"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.election_type})"


class Zone(models.Model):
    election_type = models.CharField(max_length=32, choices=ElectionType.choices, db_index=True)
    code = models.CharField(max_length=64)
    name = models.CharField(max_length=255)
    name_local = models.CharField(max_length=255, blank=True, default="")
    seats = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1)])
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ("election_type", "sort_order", "code")
        constraints = [
            models.UniqueConstraint(
                fields=["election_type", "code"],
                name="uniq_zone_election_type_code",
            ),
            models.CheckConstraint(
                condition=Q(seats__gte=1),
                name="zone_seats_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.election_type}:{self.code}"


class Voter(models.Model):
    voter_id = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    region = models.CharField(max_length=255, blank=True, default="")
    has_voted = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("voter_id",)

    def __str__(self) -> str:
        return self.voter_id

    def zone_for(self, election_type: str) -> Zone | None:
        assignment = (
            VoterZoneAssignment.objects.select_related("zone")
            .filter(voter=self, election_type=election_type)
            .first()
        )
        return assignment.zone if assignment is not None else None


class VoterZoneAssignment(models.Model):
    voter = models.ForeignKey(Voter, on_delete=models.CASCADE, related_name="zone_assignments")
    election_type = models.CharField(max_length=32, choices=ElectionType.choices)
    zone = models.ForeignKey(Zone, on_delete=models.PROTECT, related_name="voter_assignments")

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["voter", "election_type"],
                name="uniq_voter_zone_assignment_type",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.voter_id}:{self.election_type}:{self.zone_id}"

    def clean(self) -> None:
        if self.zone_id and self.zone.election_type != self.election_type:
            raise ValidationError({"zone": "Zone belongs to a different election type."})


class Candidate(models.Model):
    class Status(models.TextChoices):
        pending = "pending", "Pending"
        approved = "approved", "Approved"
        rejected = "rejected", "Rejected"

    zone = models.ForeignKey(Zone, on_delete=models.PROTECT, related_name="candidates")
    election_type = models.CharField(max_length=32, choices=ElectionType.choices, db_index=True)
    name = models.CharField(max_length=255)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.pending)
    is_nota = models.BooleanField(default=False)

    # Set when the candidate was derived from a voter record (self-nominated trustee).
    voter = models.ForeignKey(
        Voter,
        on_delete=models.PROTECT,
        blank=True,
        null=True,
        related_name="candidacies",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("zone", "name", "id")
        constraints = [
            models.UniqueConstraint(
                fields=["zone"],
                name="uniq_candidate_nota_per_zone",
                condition=Q(is_nota=True),
            ),
            models.UniqueConstraint(
                fields=["voter", "zone"],
                name="uniq_candidate_voter_zone",
                condition=Q(voter__isnull=False),
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.zone_id})"

    def clean(self) -> None:
        if self.zone_id and self.zone.election_type != self.election_type:
            raise ValidationError({"election_type": "Candidate election type must match its zone."})

    @property
    def is_approved(self) -> bool:
        return self.status == self.Status.approved


class BallotClaim(models.Model):
    """One row per (election, voter) that has cast a ballot through any channel.

    The unique constraint is the transactional guard behind one-ballot-per-voter:
    online and offline submissions both insert their claim in the same
    transaction as their vote rows.
    """

    class Channel(models.TextChoices):
        online = "online", "Online"
        offline = "offline", "Offline"

    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="ballot_claims")
    voter_id = models.CharField(max_length=64)
    channel = models.CharField(max_length=16, choices=Channel.choices)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["election", "voter_id"],
                name="uniq_ballot_claim_election_voter",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.election_id}:{self.voter_id}:{self.channel}"


class Vote(models.Model):
    election = models.ForeignKey(Election, on_delete=models.PROTECT, related_name="votes")
    voter = models.ForeignKey(Voter, on_delete=models.PROTECT, related_name="votes")
    candidate = models.ForeignKey(Candidate, on_delete=models.PROTECT, related_name="votes")
    created_at = models.DateTimeField(default=timezone.now)
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.CharField(max_length=512, blank=True, default="")

    class Meta:
        indexes = [
            models.Index(fields=["election", "voter"], name="vote_el_voter"),
            models.Index(fields=["election", "candidate"], name="vote_el_cand"),
        ]

    def __str__(self) -> str:
        return f"vote:{self.election_id}:{self.voter_id}:{self.candidate_id}"


class OfflineVote(models.Model):
    election = models.ForeignKey(Election, on_delete=models.PROTECT, related_name="offline_votes")

    # The VID as typed by the administrator; deliberately not a FK.
    voter_id = models.CharField(max_length=64, db_index=True)

    # Null marks the single all-NOTA placeholder row of an abstaining voter.
    candidate = models.ForeignKey(
        Candidate,
        on_delete=models.PROTECT,
        blank=True,
        null=True,
        related_name="offline_votes",
    )
    entered_by = models.CharField(max_length=255)
    created_at = models.DateTimeField(default=timezone.now)
    notes = models.TextField(blank=True, default="")
    is_merged = models.BooleanField(default=False)
    merged_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ("-created_at", "id")
        indexes = [
            models.Index(fields=["election", "voter_id"], name="offline_el_voter"),
            models.Index(fields=["election", "is_merged"], name="offline_el_merged"),
        ]
        permissions = [
            ("merge_offlinevote", "Can merge offline votes"),
        ]

    def __str__(self) -> str:
        return f"offline:{self.election_id}:{self.voter_id}:{self.candidate_id}"


class AuditLogEntry(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="audit_log")
    timestamp = models.DateTimeField(auto_now_add=True)
    event_type = models.CharField(max_length=64)
    payload = models.JSONField(blank=True, default=dict)
    is_public = models.BooleanField(default=False)

    class Meta:
        verbose_name_plural = "Audit log entries"
        ordering = ("timestamp", "id")
        indexes = [
            models.Index(fields=["election", "timestamp"], name="audit_el_ts"),
            models.Index(fields=["election", "is_public"], name="audit_el_pub"),
        ]

    def __str__(self) -> str:
        return f"{self.election_id}:{self.event_type}"
