from django.urls import path

from core import views_elections, views_health

urlpatterns = [
    path("healthz", views_health.healthz, name="healthz"),
    path("readyz", views_health.readyz, name="readyz"),
    path("elections/<str:election_type>/ballot/", views_elections.election_ballot, name="election-ballot"),
    path("elections/<str:election_type>/vote/", views_elections.election_vote_submit, name="election-vote-submit"),
    path(
        "elections/<str:election_type>/offline/",
        views_elections.offline_ballot_list,
        name="election-offline-list",
    ),
    path(
        "elections/<str:election_type>/offline/voter/",
        views_elections.offline_voter_lookup,
        name="election-offline-voter",
    ),
    path(
        "elections/<str:election_type>/offline/submit/",
        views_elections.offline_ballot_submit,
        name="election-offline-submit",
    ),
    path(
        "elections/<str:election_type>/offline/merge/",
        views_elections.offline_votes_merge,
        name="election-offline-merge",
    ),
    path(
        "elections/<str:election_type>/offline/<str:voter_id>/delete/",
        views_elections.offline_ballot_delete,
        name="election-offline-delete",
    ),
    path("elections/<str:election_type>/results/", views_elections.election_results, name="election-results"),
    path(
        "elections/<str:election_type>/results/declaration/",
        views_elections.election_results_declaration,
        name="election-results-declaration",
    ),
    path("elections/<str:election_type>/turnout/", views_elections.election_turnout, name="election-turnout"),
    path("elections/<str:election_type>/winners/", views_elections.election_winners, name="election-winners"),
]
