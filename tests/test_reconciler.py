"""
Tests for mapping oracle output back to real candidates.
"""

from conftest import oracle_scores
from votechain.settlement.models import EvidenceBundle, Unparseable
from votechain.settlement.reconciler import (
    FALLBACK_REASONING,
    fallback_score,
    match_by_name,
    reconcile,
    resolve_candidate_id,
)

ALPHA_ID = "3f2b8c1e-9d4a-4b7e-8a21-6c5d0e9f1a23"
BETA_ID = "a71e04d9-2c6b-4f83-9e15-b08d3c7f6e42"

BUNDLES = [
    EvidenceBundle(ALPHA_ID, "Alpha", "Realtime voting app", 2, ("great",)),
    EvidenceBundle(BETA_ID, "Beta", None, 0, ()),
]


class TestFallbackScore:

    def test_formula(self):
        assert fallback_score(0) == 50
        assert fallback_score(2) == 80
        assert fallback_score(3) == 95

    def test_capped_at_100(self):
        assert fallback_score(4) == 100
        assert fallback_score(40) == 100


class TestResolveCandidateId:

    def test_exact_id(self):
        assert resolve_candidate_id(BETA_ID, BUNDLES) == BETA_ID

    def test_truncated_id(self):
        assert resolve_candidate_id("3f2b8c1e", BUNDLES) == ALPHA_ID
        assert resolve_candidate_id("A71E04D9-2C6B", BUNDLES) == BETA_ID

    def test_short_fragment_not_treated_as_id(self):
        assert resolve_candidate_id("3f2b", BUNDLES) is None

    def test_ambiguous_prefix_rejected(self):
        bundles = [
            EvidenceBundle("abcdef12-0000-0000-0000-000000000001", "One", None, 0),
            EvidenceBundle("abcdef12-0000-0000-0000-000000000002", "Two", None, 0),
        ]
        assert resolve_candidate_id("abcdef12", bundles) is None

    def test_name(self):
        assert resolve_candidate_id("Alpha", BUNDLES) == ALPHA_ID
        assert resolve_candidate_id('"beta"', BUNDLES) == BETA_ID

    def test_short_name_fragments(self):
        assert resolve_candidate_id("Al", BUNDLES) == ALPHA_ID
        bundles = [
            EvidenceBundle("id-al", "Al", None, 0),
            EvidenceBundle("id-bo", "Bo", None, 0),
        ]
        assert resolve_candidate_id("Candidate Al", bundles) == "id-al"

    def test_unknown(self):
        assert resolve_candidate_id("Gamma", BUNDLES) is None


class TestMatchByName:

    def test_containment(self):
        assert match_by_name("Project Alpha", BUNDLES) == ALPHA_ID

    def test_exact_name_beats_containment(self):
        bundles = [
            EvidenceBundle("id-1", "Chat Bot Pro", None, 0),
            EvidenceBundle("id-2", "Chat Bot", None, 0),
        ]
        assert match_by_name("chat bot", bundles) == "id-2"

    def test_truncated_name(self):
        assert match_by_name("Al", BUNDLES) == ALPHA_ID

    def test_short_name_inside_longer_value(self):
        bundles = [
            EvidenceBundle("id-al", "Al", None, 0),
            EvidenceBundle("id-bo", "Bo", None, 0),
        ]
        assert match_by_name("Candidate Al", bundles) == "id-al"

    def test_several_containment_matches_rejected(self):
        bundles = [
            EvidenceBundle("id-1", "Alpha", None, 0),
            EvidenceBundle("id-2", "Albert", None, 0),
        ]
        assert match_by_name("Al", bundles) is None

    def test_nested_names_rejected(self):
        bundles = [
            EvidenceBundle("id-1", "Vote", None, 0),
            EvidenceBundle("id-2", "VoteChain", None, 0),
        ]
        assert match_by_name("VoteChain Mobile", bundles) is None


class TestReconcile:

    def test_exact_ids_kept(self):
        result = reconcile(oracle_scores((ALPHA_ID, 85), (BETA_ID, 40)), BUNDLES)

        assert not result.is_fallback
        assert [(e.candidate_id, e.score) for e in result.entries] == [(ALPHA_ID, 85), (BETA_ID, 40)]
        assert result.unresolved == ()
        assert result.unscored == ()

    def test_names_mapped_to_ids(self):
        result = reconcile(oracle_scores(("Alpha", 70, "nice"), ("Beta", 60)), BUNDLES)

        assert [(e.candidate_id, e.score, e.reasoning) for e in result.entries] == [
            (ALPHA_ID, 70, "nice"),
            (BETA_ID, 60, "scored 60"),
        ]

    def test_unknown_entries_dropped(self):
        result = reconcile(oracle_scores((ALPHA_ID, 85), ("Gamma", 99)), BUNDLES)

        assert [e.candidate_id for e in result.entries] == [ALPHA_ID]
        assert result.unresolved == ("Gamma",)
        assert result.unscored == (BETA_ID,)
        assert not result.is_fallback

    def test_unknown_only_uses_fallback(self):
        result = reconcile(oracle_scores(("Gamma", 99), ("Delta", 98)), BUNDLES)

        assert result.is_fallback
        assert [(e.candidate_id, e.score) for e in result.entries] == [(ALPHA_ID, 80), (BETA_ID, 50)]
        assert result.unresolved == ("Gamma", "Delta")

    def test_unparseable_uses_fallback(self):
        result = reconcile(Unparseable("free text"), BUNDLES)

        assert result.is_fallback
        assert [(e.candidate_id, e.score) for e in result.entries] == [(ALPHA_ID, 80), (BETA_ID, 50)]
        assert all(e.reasoning == FALLBACK_REASONING for e in result.entries)

    def test_duplicate_last_wins(self):
        result = reconcile(oracle_scores((ALPHA_ID, 10), (BETA_ID, 40), ("Alpha", 90)), BUNDLES)

        assert [(e.candidate_id, e.score) for e in result.entries] == [(ALPHA_ID, 90), (BETA_ID, 40)]

    def test_bundle_order_not_oracle_order(self):
        result = reconcile(oracle_scores((BETA_ID, 40), (ALPHA_ID, 85)), BUNDLES)

        assert [e.candidate_id for e in result.entries] == [ALPHA_ID, BETA_ID]
