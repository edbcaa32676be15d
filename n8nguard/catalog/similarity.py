# n8nguard/catalog/similarity.py
"""
Ranked "did you mean" suggestions for unknown node types.

Two stages:
  1. a table of common mistakes (missing prefix, wrong capitalization, typos)
     that maps straight to a known type;
  2. a multi-factor score against every catalog entry.

Score factors (max 100 before capping):
  name similarity   up to 40  (1 - editDistance/maxLen, best of type/display name)
  category match    20
  package match     15
  pattern match     up to 45  (substring, small edit distance, prefix)
Suggestions below SCORING_THRESHOLD are dropped; confidence = score / 100.
"""
from __future__ import annotations

import re
import time
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence

from n8nguard.errors import CatalogError
from n8nguard.utils.logger import get_logger

if TYPE_CHECKING:
    from n8nguard.catalog.base import NodeCatalog, NodeMetadata

logger = get_logger("catalog.similarity")

SCORING_THRESHOLD = 50
TYPO_EDIT_DISTANCE = 2
SHORT_SEARCH_LENGTH = 5
CACHE_TTL_SECONDS = 5 * 60
AUTO_FIX_CONFIDENCE = 0.9
MAX_EDIT_DISTANCE = 5


@dataclass(frozen=True)
class CommonMistake:
    pattern: str
    suggestion: str
    confidence: float
    reason: str
    case_sensitive: bool = False


# Bare node names people type without a package prefix
COMMON_NODES_WITHOUT_PREFIX: Dict[str, str] = {
    "httprequest": "nodes-base.httpRequest",
    "webhook": "nodes-base.webhook",
    "slack": "nodes-base.slack",
    "gmail": "nodes-base.gmail",
    "googlesheets": "nodes-base.googleSheets",
    "telegram": "nodes-base.telegram",
    "discord": "nodes-base.discord",
    "notion": "nodes-base.notion",
    "airtable": "nodes-base.airtable",
    "postgres": "nodes-base.postgres",
    "mysql": "nodes-base.mySql",
    "mongodb": "nodes-base.mongoDb",
}

# Full package prefix -> catalog short prefix
PREFIX_MISTAKES: Sequence[CommonMistake] = (
    CommonMistake("n8n-nodes-base.", "nodes-base.", 0.95, "Full package name used instead of short form"),
    CommonMistake("@n8n/n8n-nodes-langchain.", "nodes-langchain.", 0.95, "Full package name used instead of short form"),
)

DEFAULT_COMMON_MISTAKES: Sequence[CommonMistake] = (
    # capitalization / missing prefix
    CommonMistake("httprequest", "nodes-base.httpRequest", 0.95, "Incorrect capitalization"),
    CommonMistake("webhook", "nodes-base.webhook", 0.95, "Incorrect capitalization"),
    CommonMistake("slack", "nodes-base.slack", 0.9, "Missing package prefix"),
    CommonMistake("gmail", "nodes-base.gmail", 0.9, "Missing package prefix"),
    CommonMistake("googlesheets", "nodes-base.googleSheets", 0.9, "Missing package prefix"),
    CommonMistake("telegram", "nodes-base.telegram", 0.9, "Missing package prefix"),
    CommonMistake("HttpRequest", "nodes-base.httpRequest", 0.95, "Incorrect capitalization", True),
    CommonMistake("HTTPRequest", "nodes-base.httpRequest", 0.95, "Common capitalization mistake", True),
    CommonMistake("Webhook", "nodes-base.webhook", 0.95, "Incorrect capitalization", True),
    CommonMistake("WebHook", "nodes-base.webhook", 0.95, "Common capitalization mistake", True),
    # typos
    CommonMistake("htprequest", "nodes-base.httpRequest", 0.8, "Likely typo"),
    CommonMistake("httpreqest", "nodes-base.httpRequest", 0.8, "Likely typo"),
    CommonMistake("webook", "nodes-base.webhook", 0.8, "Likely typo"),
    CommonMistake("slak", "nodes-base.slack", 0.8, "Likely typo"),
    # AI / LangChain
    CommonMistake("openai", "nodes-langchain.openAi", 0.85, "AI node - incorrect package"),
    CommonMistake("nodes-base.openai", "nodes-langchain.openAi", 0.9, "Wrong package - OpenAI is in LangChain package"),
    CommonMistake("chatopenai", "nodes-langchain.lmChatOpenAi", 0.85, "LangChain node naming convention"),
    CommonMistake("vectorstore", "nodes-langchain.vectorStoreInMemory", 0.7, "Generic vector store reference"),
)


@dataclass
class SimilarityScore:
    name_similarity: float = 0.0
    category_match: float = 0.0
    package_match: float = 0.0
    pattern_match: float = 0.0

    @property
    def total(self) -> float:
        return self.name_similarity + self.category_match + self.package_match + self.pattern_match


@dataclass
class NodeSuggestion:
    node_type: str
    display_name: str
    confidence: float
    reason: str
    category: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        return {
            "nodeType": d["node_type"],
            "displayName": d["display_name"],
            "confidence": d["confidence"],
            "reason": d["reason"],
            "category": d["category"],
            "description": d["description"],
        }


# ---------- String helpers ----------

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_for_match(s: str) -> str:
    return _NON_ALNUM.sub("", (s or "").lower()).strip()


def edit_distance(s1: str, s2: str, max_distance: int = MAX_EDIT_DISTANCE) -> int:
    """
    Levenshtein distance over two rows. Once the distance is known to exceed
    `max_distance` the result is clamped to max_distance + 1.
    """
    if s1 == s2:
        return 0
    m, n = len(s1), len(s2)
    if abs(m - n) > max_distance:
        return max_distance + 1
    if m == 0:
        return n
    if n == 0:
        return m

    prev = list(range(n + 1))
    for i in range(1, m + 1):
        curr = [i]
        row_min = i
        for j in range(1, n + 1):
            cost = 0 if s1[i - 1] == s2[j - 1] else 1
            val = min(curr[j - 1] + 1, prev[j] + 1, prev[j - 1] + cost)
            curr.append(val)
            row_min = min(row_min, val)
        if row_min > max_distance:
            return max_distance + 1
        prev = curr
    return prev[n]


def string_similarity(s1: str, s2: str) -> float:
    """1.0 for equal strings, 0.0 when either is empty."""
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    return 1 - edit_distance(s1, s2) / max(len(s1), len(s2))


# ---------- Scoring ----------

class SimilarityScorer:
    """Swappable scoring strategy; weights are class attributes."""

    NAME_WEIGHT = 40
    CATEGORY_MATCH = 20
    PACKAGE_MATCH = 15
    SUBSTRING_MATCH = 25
    SHORT_SUBSTRING_MATCH = 45
    TYPE_TYPO_MATCH = 20
    DISPLAY_TYPO_MATCH = 18
    SHORT_PREFIX_MATCH = 40
    SHORT_NAME_FLOOR = 10

    def score(self, invalid_type: str, node: "NodeMetadata") -> SimilarityScore:
        clean_invalid = normalize_for_match(invalid_type)
        clean_valid = normalize_for_match(node.node_type)
        clean_display = normalize_for_match(node.display_name)
        is_short = len(invalid_type) <= SHORT_SEARCH_LENGTH
        is_substring = clean_invalid in clean_valid or clean_invalid in clean_display

        s = SimilarityScore()
        s.name_similarity = max(
            string_similarity(clean_invalid, clean_valid),
            string_similarity(clean_invalid, clean_display),
        ) * self.NAME_WEIGHT
        if is_short and is_substring:
            s.name_similarity = max(s.name_similarity, self.SHORT_NAME_FLOOR)

        if node.category:
            clean_category = normalize_for_match(node.category)
            if clean_category and (clean_category in clean_invalid or clean_invalid in clean_category):
                s.category_match = self.CATEGORY_MATCH

        if re.split(r"[.-]", clean_invalid)[0] == re.split(r"[.-]", clean_valid)[0]:
            s.package_match = self.PACKAGE_MATCH

        if is_substring:
            s.pattern_match = self.SHORT_SUBSTRING_MATCH if is_short else self.SUBSTRING_MATCH
        elif edit_distance(clean_invalid, clean_valid) <= TYPO_EDIT_DISTANCE:
            s.pattern_match = self.TYPE_TYPO_MATCH
        elif edit_distance(clean_invalid, clean_display) <= TYPO_EDIT_DISTANCE:
            s.pattern_match = self.DISPLAY_TYPO_MATCH

        if is_short and (clean_valid.startswith(clean_invalid) or clean_display.startswith(clean_invalid)):
            s.pattern_match = max(s.pattern_match, self.SHORT_PREFIX_MATCH)
        return s

    def reason(self, score: SimilarityScore) -> str:
        if score.pattern_match >= 20:
            return "Name similarity"
        if score.category_match >= 15:
            return "Same category"
        if score.package_match >= 10:
            return "Same package"
        return "Similar node"


class NodeSimilarityService:
    def __init__(
        self,
        catalog: "NodeCatalog",
        scorer: Optional[SimilarityScorer] = None,
        mistakes: Optional[Sequence[CommonMistake]] = None,
        bare_names: Optional[Mapping[str, str]] = None,
        cache_ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.catalog = catalog
        self.scorer = scorer or SimilarityScorer()
        self.mistakes = tuple(mistakes) if mistakes is not None else DEFAULT_COMMON_MISTAKES
        self.bare_names = dict(bare_names) if bare_names is not None else COMMON_NODES_WITHOUT_PREFIX
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._cache: Optional[List["NodeMetadata"]] = None
        self._cache_expiry = 0.0

    # ---------- Cache ----------

    def _cached_nodes(self) -> List["NodeMetadata"]:
        now = self._clock()
        if self._cache is not None and now <= self._cache_expiry:
            return self._cache
        try:
            nodes = self.catalog.list_nodes()
        except CatalogError as e:
            logger.error("Failed to list catalog nodes for similarity: %s", e)
            return self._cache or []
        if nodes:
            self._cache = nodes
            self._cache_expiry = now + self.cache_ttl
            logger.debug("Similarity node cache refreshed (%d nodes)", len(nodes))
        elif self._cache:
            logger.warning("Catalog returned no nodes, keeping stale similarity cache")
        return self._cache or []

    def invalidate_cache(self) -> None:
        self._cache = None
        self._cache_expiry = 0.0

    # ---------- Public API ----------

    def find_similar_nodes(self, invalid_type: str, limit: int = 5) -> List[NodeSuggestion]:
        if not invalid_type or not invalid_type.strip():
            return []

        suggestions: List[NodeSuggestion] = []
        mistake = self.check_common_mistakes(invalid_type)
        if mistake is not None:
            suggestions.append(mistake)

        scored = [(node, self.scorer.score(invalid_type, node)) for node in self._cached_nodes()]
        scored.sort(key=lambda pair: pair[1].total, reverse=True)

        for node, score in scored:
            if len(suggestions) >= limit:
                break
            if any(s.node_type == node.node_type for s in suggestions):
                continue
            if score.total >= SCORING_THRESHOLD:
                suggestions.append(NodeSuggestion(
                    node_type=node.node_type,
                    display_name=node.display_name,
                    confidence=min(score.total / 100, 1.0),
                    reason=self.scorer.reason(score),
                    category=node.category,
                    description=node.description,
                ))
        return suggestions[:limit]

    def check_common_mistakes(self, invalid_type: str) -> Optional[NodeSuggestion]:
        clean = invalid_type.strip()
        lower = clean.lower()

        bare = self.bare_names.get(lower)
        if bare:
            found = self._suggest(bare, 0.9, "Missing package prefix")
            if found:
                return found

        for m in PREFIX_MISTAKES:
            if clean.startswith(m.pattern):
                found = self._suggest(m.suggestion + clean[len(m.pattern):], m.confidence, m.reason)
                if found:
                    return found

        for m in self.mistakes:
            hit = clean == m.pattern if m.case_sensitive else lower == m.pattern.lower()
            if hit:
                found = self._suggest(m.suggestion, m.confidence, m.reason)
                if found:
                    return found
        return None

    def _suggest(self, node_type: str, confidence: float, reason: str) -> Optional[NodeSuggestion]:
        node = self.catalog.get_node(node_type)
        if node is None:
            return None
        return NodeSuggestion(
            node_type=node.node_type,
            display_name=node.display_name,
            confidence=confidence,
            reason=reason,
            category=node.category,
            description=node.description,
        )


def is_auto_fixable(suggestion: NodeSuggestion) -> bool:
    return suggestion.confidence >= AUTO_FIX_CONFIDENCE


def format_suggestion_message(suggestions: List[NodeSuggestion], invalid_type: str) -> str:
    if not suggestions:
        return f'Unknown node type: "{invalid_type}". No similar nodes found.'
    lines = [f'Unknown node type: "{invalid_type}"', "", "Did you mean one of these?"]
    for s in suggestions:
        line = f"- {s.node_type} ({round(s.confidence * 100)}% match)"
        if s.display_name:
            line += f" - {s.display_name}"
        lines.append(line)
        hint = f"  -> {s.reason}"
        if is_auto_fixable(s):
            hint += " (can be auto-fixed)"
        lines.append(hint)
    return "\n".join(lines) + "\n"
