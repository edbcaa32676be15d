# tests/test_similarity.py

import pytest

from n8nguard.catalog.base import NodeMetadata
from n8nguard.catalog.memory import InMemoryNodeCatalog
from n8nguard.catalog.similarity import (
    CommonMistake,
    NodeSimilarityService,
    NodeSuggestion,
    SimilarityScorer,
    edit_distance,
    format_suggestion_message,
    is_auto_fixable,
    string_similarity,
)

SLACK = NodeMetadata("nodes-base.slack", "Slack", 2.2, True, "Communication", "n8n-nodes-base")


# ---------- String helpers ----------

@pytest.mark.parametrize(
    "a, b, expected",
    [("slack", "slack", 0), ("slck", "slack", 1), ("", "abc", 3), ("kitten", "sitting", 3)],
)
def test_edit_distance(a, b, expected):
    assert edit_distance(a, b) == expected


def test_edit_distance_is_clamped():
    assert edit_distance("a", "abcdefghij") == 6
    assert edit_distance("abcdefgh", "zyxwvuts", max_distance=2) == 3


def test_string_similarity():
    assert string_similarity("slack", "slack") == 1.0
    assert string_similarity("", "slack") == 0.0
    assert string_similarity("slck", "slack") == pytest.approx(0.8)


# ---------- Scoring goldens ----------

def test_slck_scores_exactly_threshold():
    score = SimilarityScorer().score("slck", SLACK)
    assert score.name_similarity == pytest.approx(32)
    assert score.category_match == 0
    assert score.package_match == 0
    assert score.pattern_match == 18
    assert score.total == pytest.approx(50)
    assert SimilarityScorer().reason(score) == "Similar node"


def test_short_prefix_search():
    score = SimilarityScorer().score("sla", SLACK)
    # substring of the display name beats the prefix bonus
    assert score.pattern_match == SimilarityScorer.SHORT_SUBSTRING_MATCH
    assert SimilarityScorer().reason(score) == "Name similarity"


def test_slck_suggestion_from_service():
    service = NodeSimilarityService(InMemoryNodeCatalog([SLACK]))
    [s] = service.find_similar_nodes("slck")
    assert s.node_type == "nodes-base.slack"
    assert s.confidence == pytest.approx(0.5)
    assert s.reason == "Similar node"


# ---------- Common mistakes ----------

def test_common_typo(catalog):
    service = NodeSimilarityService(catalog)
    s = service.check_common_mistakes("httpreqest")
    assert s.node_type == "nodes-base.httpRequest"
    assert s.confidence == 0.8
    assert s.reason == "Likely typo"


def test_missing_prefix_and_full_package(catalog):
    service = NodeSimilarityService(catalog)
    assert service.check_common_mistakes("Slack").reason == "Missing package prefix"
    full = service.check_common_mistakes("n8n-nodes-base.webhook")
    assert full.node_type == "nodes-base.webhook"
    assert full.confidence == 0.95


def test_case_sensitive_mistake(catalog):
    mistakes = [CommonMistake("TG", "nodes-base.telegram", 0.6, "Abbreviation", case_sensitive=True)]
    service = NodeSimilarityService(catalog, mistakes=mistakes, bare_names={})
    assert service.check_common_mistakes("TG").node_type == "nodes-base.telegram"
    assert service.check_common_mistakes("tg") is None


def test_mistake_table_is_injectable(catalog):
    mistakes = [CommonMistake("mail", "nodes-base.emailSend", 0.7, "Team shorthand")]
    service = NodeSimilarityService(catalog, mistakes=mistakes, bare_names={})
    s = service.check_common_mistakes("MAIL")
    assert (s.node_type, s.reason) == ("nodes-base.emailSend", "Team shorthand")
    assert service.check_common_mistakes("httpreqest") is None


def test_results_respect_limit_and_order(catalog):
    suggestions = NodeSimilarityService(catalog).find_similar_nodes("httpreqest", limit=2)
    assert len(suggestions) <= 2
    assert suggestions[0].node_type == "nodes-base.httpRequest"


def test_blank_input_has_no_suggestions(catalog):
    assert NodeSimilarityService(catalog).find_similar_nodes("   ") == []


# ---------- Cache ----------

class _CountingCatalog(InMemoryNodeCatalog):
    calls = 0

    def list_nodes(self):
        self.calls += 1
        return super().list_nodes()


def test_node_list_is_cached_until_ttl():
    now = [0.0]
    cat = _CountingCatalog([SLACK])
    service = NodeSimilarityService(cat, cache_ttl=10, clock=lambda: now[0])
    service.find_similar_nodes("slck")
    service.find_similar_nodes("slak")
    assert cat.calls == 1
    now[0] = 11.0
    service.find_similar_nodes("slck")
    assert cat.calls == 2


def test_catalog_add_invalidates_cache():
    cat = InMemoryNodeCatalog([SLACK])
    assert cat.suggest_similar("discrd") == []
    cat.add(NodeMetadata("nodes-base.discord", "Discord", 2, True, "Communication"))
    assert cat.suggest_similar("discrd")[0].node_type == "nodes-base.discord"


# ---------- Formatting ----------

def test_format_suggestion_message():
    s = NodeSuggestion("nodes-base.httpRequest", "HTTP Request", 0.95, "Incorrect capitalization")
    text = format_suggestion_message([s], "HttpRequest")
    assert text.startswith('Unknown node type: "HttpRequest"')
    assert "- nodes-base.httpRequest (95% match) - HTTP Request" in text
    assert "(can be auto-fixed)" in text
    assert is_auto_fixable(s)
    assert format_suggestion_message([], "zzz") == 'Unknown node type: "zzz". No similar nodes found.'


def test_suggestion_to_dict_is_camel_case():
    d = NodeSuggestion("nodes-base.slack", "Slack", 0.5, "Similar node").to_dict()
    assert d["nodeType"] == "nodes-base.slack"
    assert d["displayName"] == "Slack"
