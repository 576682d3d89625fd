"""
Rule-based posting classifier.

Assigns each posting a primary category, a confidence score, up to two
secondary categories, human-readable reasoning and review flags. Senior
leadership grades and titles short-circuit keyword scoring.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .dictionary import LEADERSHIP_CATEGORY, CategoryDictionary, default_dictionary
from .logger import get_logger
from .normalize import html_to_text

logger = get_logger()

EXECUTIVE_GRADES = {"ASG", "USG", "SG", "DSG"}

LEADERSHIP_TITLE_PHRASES = [
    "resident coordinator", "country director", "regional director",
    "deputy director general", "assistant director general", "director general",
    "assistant secretary-general", "under-secretary-general", "secretary-general",
    "executive secretary", "administrator", "high commissioner",
    "special representative", "deputy special representative",
]

_D_GRADE = re.compile(r"^D-?([12])$")
_P_GRADE = re.compile(r"^P-?(\d+)$")
_PSA_GRADE = re.compile(r"^PSA-?(\d+)$")
_NPSA_GRADE = re.compile(r"^NPSA-?(\d+)$")
_G_GRADE = re.compile(r"[GS]-?(\d+)")


@dataclass
class ClassificationResult:
    primary: str
    confidence: int
    secondary: List[Dict[str, Any]] = field(default_factory=list)
    reasoning: List[str] = field(default_factory=list)
    flags: Dict[str, Any] = field(default_factory=dict)
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_leadership_grade(grade: Optional[str]) -> bool:
    """
    True for executive bands, D-1/D-2, NOD, P-5 to P-7, PSA-10+ and NPSA-10+.

    Everything else, including P-4 and below, G/GS grades, NOA-NOC,
    interns, consultants and volunteers, is not a leadership grade.
    """
    if not grade:
        return False
    g = grade.upper().strip()
    if g in EXECUTIVE_GRADES or g == "NOD" or _D_GRADE.match(g):
        return True
    m = _P_GRADE.match(g)
    if m:
        return 5 <= int(m.group(1)) <= 7
    m = _PSA_GRADE.match(g) or _NPSA_GRADE.match(g)
    if m:
        return int(m.group(1)) >= 10
    return False


def seniority_level(grade: Optional[str]) -> str:
    """Map a UN grade code to a seniority band."""
    if not grade or not grade.strip():
        return "Unknown"
    g = grade.upper().strip()

    if g in EXECUTIVE_GRADES or _D_GRADE.match(g):
        return "Executive"

    m = _P_GRADE.match(g)
    if m:
        level = int(m.group(1))
        if level >= 5:
            return "Senior"
        if level >= 3:
            return "Mid-Level"
        return "Entry"

    if g.startswith("NO"):
        if g == "NOD":
            return "Senior"
        if g == "NOC":
            return "Mid-Level"
        return "Entry"

    if g.startswith("G"):
        m = _G_GRADE.search(g)
        if m:
            level = int(m.group(1))
            if level >= 6:
                return "Senior"
            if level >= 4:
                return "Mid-Level"
            return "Entry"

    if "INTERN" in g:
        return "Intern"
    if "CONSULT" in g:
        return "Consultant"
    if "UNV" in g or "VOLUNTEER" in g:
        return "Volunteer"
    return "Unknown"


def leadership_trigger(grade: Optional[str], title: Optional[str]) -> Optional[str]:
    """Describe why a posting is a leadership role, or None."""
    if is_leadership_grade(grade):
        return f"Leadership grade {grade.strip()} detected"
    title_lower = (title or "").lower()
    for phrase in LEADERSHIP_TITLE_PHRASES:
        if phrase in title_lower:
            return f'Leadership title "{phrase}" detected'
    return None


class Classifier:
    """
    Scores a posting against every category of a CategoryDictionary.

    Instances are immutable after construction and safe to share.
    """

    def __init__(self, dictionary: Optional[CategoryDictionary] = None):
        self.dictionary = dictionary or default_dictionary()
        self.weights = self.dictionary.weights
        self._vocabulary = self.dictionary.vocabulary
        self._patterns: Dict[str, Tuple[List[re.Pattern], List[re.Pattern]]] = {}
        self._pair_patterns: Dict[str, List[Tuple[re.Pattern, re.Pattern]]] = {}
        for category in self.dictionary.categories:
            self._patterns[category.id] = (
                [self._keyword_pattern(k) for k in category.core_keywords],
                [self._keyword_pattern(k) for k in category.support_keywords],
            )
            self._pair_patterns[category.id] = [
                (self._keyword_pattern(first), self._keyword_pattern(second))
                for first, second in category.context_pairs
            ]

    @staticmethod
    def _keyword_pattern(keyword: str) -> re.Pattern:
        return re.compile(r"\b" + re.escape(keyword) + r"\b", re.IGNORECASE)

    def classify(self, posting: Mapping[str, Any]) -> ClassificationResult:
        """
        Classify a posting mapping (title, description, job_labels, up_grade).

        Never raises: any internal error yields the fallback result.
        """
        try:
            return self._classify(posting)
        except Exception as e:
            logger.warning("Classification failed, using fallback", error=str(e))
            return self.fallback_result()

    def _classify(self, posting: Mapping[str, Any]) -> ClassificationResult:
        title, combined = self.extract_content(posting)

        trigger = leadership_trigger(posting.get("up_grade"), posting.get("title"))
        if trigger:
            confidence = self.weights.leadership_confidence
            return ClassificationResult(
                primary=LEADERSHIP_CATEGORY,
                confidence=confidence,
                reasoning=[f"Leadership override: {trigger}"],
                flags={
                    "lowConfidence": confidence < self.weights.low_confidence_below,
                    "ambiguous": False,
                    "emergingTerms": [],
                },
            )

        scores = self.score_categories(title, combined)
        # sorted() is stable, so equal scores keep declaration order
        ranked = sorted(scores, key=lambda item: item[1], reverse=True)
        top_id, top_score = ranked[0]
        if top_score <= 0:
            top_id = self.dictionary.fallback_category

        secondary = [
            {"category": cid, "confidence": round(score)}
            for cid, score in ranked[1:1 + self.weights.secondary_count]
            if score > self.weights.secondary_threshold
        ]

        return ClassificationResult(
            primary=top_id,
            confidence=round(top_score),
            secondary=secondary,
            reasoning=self._reasoning(top_id, top_score),
            flags=self._flags(ranked, combined),
        )

    def extract_content(self, posting: Mapping[str, Any]) -> Tuple[str, str]:
        """Return (title, combined text), both lowercased."""
        title = str(posting.get("title") or "").lower()
        description = html_to_text(posting.get("description")).lower()
        labels = [
            label.strip().lower()
            for label in str(posting.get("job_labels") or "").split(",")
        ]
        combined = f"{title} {description} {' '.join(labels)}"
        return title, combined

    def score_categories(self, title: str, combined: str) -> List[Tuple[str, int]]:
        """Score every category in declaration order."""
        w = self.weights
        results = []
        for category in self.dictionary.categories:
            core_patterns, support_patterns = self._patterns[category.id]
            score = 0
            for pattern in core_patterns:
                score += len(pattern.findall(combined)) * w.core
            for pattern in support_patterns:
                score += len(pattern.findall(combined)) * w.support
            for first, second in self._pair_patterns[category.id]:
                if first.search(combined) and second.search(combined):
                    score += w.context_pair
            # whole words only, so "ai" never fires inside "maintenance"
            for pattern in core_patterns:
                if pattern.search(title):
                    score += w.title_bonus
            results.append((category.id, max(0, min(w.max_score, score))))
        return results

    def _reasoning(self, category_id: str, score: int) -> List[str]:
        reasoning = [f"Classified as {self.dictionary.name_of(category_id)} based on keyword analysis"]
        if score > 80:
            reasoning.append("High confidence classification with strong keyword matches")
        elif score > 60:
            reasoning.append("Moderate confidence classification")
        else:
            reasoning.append("Low confidence classification - manual review recommended")
        return reasoning

    def _flags(self, ranked: List[Tuple[str, int]], combined: str) -> Dict[str, Any]:
        w = self.weights
        flags = {
            "lowConfidence": ranked[0][1] < w.low_confidence_below,
            "ambiguous": len(ranked) > 1 and ranked[1][1] > w.ambiguous_above,
            "emergingTerms": [],
        }
        candidates = [
            word for word in combined.split()
            if len(word) > 3 and word not in self.dictionary.stop_words
        ][:20]
        unknown = [word for word in candidates if word not in self._vocabulary]
        if len(unknown) > 3:
            flags["emergingTerms"] = unknown[:5]
        return flags

    def fallback_result(self) -> ClassificationResult:
        return ClassificationResult(
            primary=self.dictionary.fallback_category,
            confidence=self.weights.fallback_confidence,
            reasoning=["Fallback classification due to processing error"],
            flags={"lowConfidence": True, "ambiguous": False, "emergingTerms": []},
            is_fallback=True,
        )
