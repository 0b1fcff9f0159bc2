import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

ELECTION_TYPE_CHOICES = [
    ("yuva_pankh", "Yuva Pankh Samiti"),
    ("karobari", "Karobari Samiti"),
    ("trustees", "Trust Mandal"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Election",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("election_type", models.CharField(choices=ELECTION_TYPE_CHOICES, db_index=True, max_length=32)),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("active", "Active"), ("closed", "Closed")],
                        default="draft",
                        max_length=16,
                    ),
                ),
                ("results_declared_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ("-created_at", "id"),
                "permissions": [
                    ("view_results", "Can view election results"),
                    ("declare_results", "Can declare or revoke election results"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "active")),
                        fields=("election_type",),
                        name="uniq_election_active_per_type",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Zone",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("election_type", models.CharField(choices=ELECTION_TYPE_CHOICES, db_index=True, max_length=32)),
                ("code", models.CharField(max_length=64)),
                ("name", models.CharField(max_length=255)),
                ("name_local", models.CharField(blank=True, default="", max_length=255)),
                (
                    "seats",
                    models.PositiveSmallIntegerField(
                        default=1,
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("sort_order", models.PositiveSmallIntegerField(default=0)),
            ],
            options={
                "ordering": ("election_type", "sort_order", "code"),
                "constraints": [
                    models.UniqueConstraint(fields=("election_type", "code"), name="uniq_zone_election_type_code"),
                    models.CheckConstraint(condition=models.Q(("seats__gte", 1)), name="zone_seats_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Voter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("voter_id", models.CharField(max_length=64, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("region", models.CharField(blank=True, default="", max_length=255)),
                ("has_voted", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ("voter_id",),
            },
        ),
        migrations.CreateModel(
            name="VoterZoneAssignment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("election_type", models.CharField(choices=ELECTION_TYPE_CHOICES, max_length=32)),
                (
                    "voter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="zone_assignments",
                        to="core.voter",
                    ),
                ),
                (
                    "zone",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="voter_assignments",
                        to="core.zone",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("voter", "election_type"), name="uniq_voter_zone_assignment_type"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Candidate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("election_type", models.CharField(choices=ELECTION_TYPE_CHOICES, db_index=True, max_length=32)),
                ("name", models.CharField(max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected")],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("is_nota", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "voter",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="candidacies",
                        to="core.voter",
                    ),
                ),
                (
                    "zone",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="candidates",
                        to="core.zone",
                    ),
                ),
            ],
            options={
                "ordering": ("zone", "name", "id"),
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_nota", True)),
                        fields=("zone",),
                        name="uniq_candidate_nota_per_zone",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("voter__isnull", False)),
                        fields=("voter", "zone"),
                        name="uniq_candidate_voter_zone",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BallotClaim",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("voter_id", models.CharField(max_length=64)),
                (
                    "channel",
                    models.CharField(choices=[("online", "Online"), ("offline", "Offline")], max_length=16),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "election",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="ballot_claims",
                        to="core.election",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("election", "voter_id"), name="uniq_ballot_claim_election_voter"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Vote",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.CharField(blank=True, default="", max_length=512)),
                (
                    "candidate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="votes",
                        to="core.candidate",
                    ),
                ),
                (
                    "election",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="votes",
                        to="core.election",
                    ),
                ),
                (
                    "voter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="votes",
                        to="core.voter",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["election", "voter"], name="vote_el_voter"),
                    models.Index(fields=["election", "candidate"], name="vote_el_cand"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OfflineVote",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("voter_id", models.CharField(db_index=True, max_length=64)),
                ("entered_by", models.CharField(max_length=255)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("notes", models.TextField(blank=True, default="")),
                ("is_merged", models.BooleanField(default=False)),
                ("merged_at", models.DateTimeField(blank=True, null=True)),
                (
                    "candidate",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="offline_votes",
                        to="core.candidate",
                    ),
                ),
                (
                    "election",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="offline_votes",
                        to="core.election",
                    ),
                ),
            ],
            options={
                "ordering": ("-created_at", "id"),
                "permissions": [("merge_offlinevote", "Can merge offline votes")],
                "indexes": [
                    models.Index(fields=["election", "voter_id"], name="offline_el_voter"),
                    models.Index(fields=["election", "is_merged"], name="offline_el_merged"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLogEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("timestamp", models.DateTimeField(auto_now_add=True)),
                ("event_type", models.CharField(max_length=64)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("is_public", models.BooleanField(default=False)),
                (
                    "election",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="audit_log",
                        to="core.election",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Audit log entries",
                "ordering": ("timestamp", "id"),
                "indexes": [
                    models.Index(fields=["election", "timestamp"], name="audit_el_ts"),
                    models.Index(fields=["election", "is_public"], name="audit_el_pub"),
                ],
            },
        ),
    ]
