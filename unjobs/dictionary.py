"""
Category dictionary for the posting classifier.

A dictionary is an ordered, immutable set of categories, each with core
keywords, support keywords and context pairs, plus the scoring weights used
by the classifier. Declaration order matters: it breaks score ties.
"""

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

FALLBACK_CATEGORY = "operations-administration"
LEADERSHIP_CATEGORY = "leadership-executive"

STOP_WORDS = frozenset({
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had", "do",
    "does", "did", "will", "would", "could", "should", "may", "might", "must",
    "can", "this", "that", "these", "those", "a", "an", "as", "if", "when",
    "where", "why", "how", "what", "who", "which", "than", "so", "very", "just",
})


@dataclass(frozen=True)
class ScoringWeights:
    """Scoring constants and flag thresholds."""

    core: int = 40
    support: int = 20
    context_pair: int = 25
    title_bonus: int = 20
    max_score: int = 100
    secondary_threshold: int = 30
    secondary_count: int = 2
    low_confidence_below: int = 40
    ambiguous_above: int = 60
    leadership_confidence: int = 95
    fallback_confidence: int = 25


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    description: str = ""
    core_keywords: Tuple[str, ...] = ()
    support_keywords: Tuple[str, ...] = ()
    context_pairs: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class CategoryDictionary:
    categories: Tuple[Category, ...]
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    fallback_category: str = FALLBACK_CATEGORY
    stop_words: FrozenSet[str] = STOP_WORDS

    def __post_init__(self):
        ids = [c.id for c in self.categories]
        if not ids:
            raise ValueError("A category dictionary needs at least one category")
        if len(set(ids)) != len(ids):
            raise ValueError("Category ids must be unique")
        if self.fallback_category not in ids:
            raise ValueError(f"Fallback category {self.fallback_category!r} is not defined")

    def get(self, category_id: str) -> Optional[Category]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def name_of(self, category_id: str) -> str:
        category = self.get(category_id)
        return category.name if category else category_id

    @property
    def category_ids(self) -> List[str]:
        return [c.id for c in self.categories]

    @property
    def vocabulary(self) -> FrozenSet[str]:
        """Every core and support keyword, used to spot unknown terms."""
        words = set()
        for category in self.categories:
            words.update(category.core_keywords)
            words.update(category.support_keywords)
        return frozenset(words)


def _lower_all(values) -> Tuple[str, ...]:
    return tuple(str(v).strip().lower() for v in values if str(v).strip())


def build_category(data: Dict[str, Any]) -> Category:
    """Build a Category from a plain mapping, lowercasing every keyword."""
    if not data.get("id") or not data.get("name"):
        raise ValueError("Each category needs an 'id' and a 'name'")
    pairs = []
    for pair in data.get("context_pairs", []):
        if len(pair) != 2:
            raise ValueError(f"Context pair must have two words: {pair!r}")
        pairs.append((str(pair[0]).lower(), str(pair[1]).lower()))
    return Category(
        id=data["id"],
        name=data["name"],
        description=data.get("description", ""),
        core_keywords=_lower_all(data.get("core_keywords", [])),
        support_keywords=_lower_all(data.get("support_keywords", [])),
        context_pairs=tuple(pairs),
    )


def build_dictionary(
    categories: List[Dict[str, Any]],
    weights: Optional[Dict[str, int]] = None,
    fallback_category: str = FALLBACK_CATEGORY,
) -> CategoryDictionary:
    return CategoryDictionary(
        categories=tuple(build_category(c) for c in categories),
        weights=ScoringWeights(**(weights or {})),
        fallback_category=fallback_category,
    )


def load_dictionary(path: Path) -> CategoryDictionary:
    """
    Load a dictionary from a JSON file.

    The file holds {"categories": [...], "weights": {...}, "fallback_category": "..."}
    where each category uses the same keys as DEFAULT_CATEGORIES.
    Weights and fallback category are optional.
    """
    with Path(path).open("r", encoding="utf-8") as f:
        data = json.load(f)
    return build_dictionary(
        data["categories"],
        weights=data.get("weights"),
        fallback_category=data.get("fallback_category", FALLBACK_CATEGORY),
    )


@lru_cache(maxsize=1)
def default_dictionary() -> CategoryDictionary:
    """The UN job category dictionary, built once."""
    return build_dictionary(DEFAULT_CATEGORIES)


DEFAULT_CATEGORIES: List[Dict[str, Any]] = [
    {
        "id": "leadership-executive",
        "name": "Leadership & Executive Management",
        "description": "Senior leadership positions including Resident Coordinators, Country Directors, "
                       "Chiefs of Mission, Representatives, and executive management",
        "core_keywords": [
            "director", "coordinator", "representative", "chief", "deputy", "head", "executive",
            "resident coordinator", "country director", "deputy director", "chief of mission",
            "senior management", "executive management", "leadership", "strategic leadership",
            "D1", "D2", "ASG", "USG", "executive level", "senior executive",
        ],
        "support_keywords": [
            "management", "oversight", "governance", "strategic direction", "leadership team",
            "senior position", "executive role", "country management", "field management",
            "regional director", "global leadership", "organizational leadership",
            "executive coordination", "senior coordinator", "chief officer",
        ],
        "context_pairs": [
            ["resident", "coordinator"], ["country", "director"], ["chief", "mission"],
            ["deputy", "director"], ["senior", "management"], ["executive", "leadership"],
            ["strategic", "leadership"], ["field", "management"],
        ],
    },
    {
        "id": "digital-technology",
        "name": "Digital & Technology",
        "description": "IT, software development, data science, cybersecurity, digital transformation",
        "core_keywords": [
            "software", "programmer", "developer", "software engineer", "data scientist",
            "IT specialist", "digital transformation", "cybersecurity", "machine learning",
            "AI", "artificial intelligence", "blockchain", "programming", "coding",
            "cloud computing", "big data analytics", "automation engineer",
        ],
        "support_keywords": [
            "innovation", "platform", "system", "database", "web", "mobile", "app",
            "technical", "coding", "algorithm", "API", "integration", "infrastructure",
            "DevOps", "agile", "scrum", "user experience", "UX", "UI", "digital literacy",
            "e-governance", "smart city", "IoT", "internet of things",
        ],
        "context_pairs": [
            ["data", "analysis"], ["digital", "transformation"], ["IT", "systems"],
            ["software", "development"], ["cyber", "security"], ["machine", "learning"],
            ["artificial", "intelligence"], ["cloud", "computing"], ["big", "data"],
        ],
    },
    {
        "id": "climate-environment",
        "name": "Climate & Environment",
        "description": "Climate change, environmental protection, sustainability, renewable energy, conservation",
        "core_keywords": [
            "climate", "environment", "sustainability", "green", "carbon", "renewable",
            "biodiversity", "ecosystem", "conservation", "climate change", "environmental",
            "clean energy", "emissions", "mitigation", "adaptation", "forest",
            "ocean", "marine", "wildlife", "natural resources",
        ],
        "support_keywords": [
            "ecological", "waste management", "pollution", "deforestation", "restoration",
            "sustainable development", "green technology", "solar", "wind", "hydroelectric",
            "carbon footprint", "greenhouse gas", "Paris agreement", "UNFCCC", "SDG",
            "circular economy", "nature-based solutions", "ecosystem services",
        ],
        "context_pairs": [
            ["climate", "change"], ["renewable", "energy"], ["carbon", "emissions"],
            ["biodiversity", "conservation"], ["green", "technology"], ["sustainable", "development"],
            ["environmental", "protection"], ["clean", "energy"],
        ],
    },
    {
        "id": "health-medical",
        "name": "Health & Medical",
        "description": "Public health, medical services, epidemiology, health systems, nutrition",
        "core_keywords": [
            "health", "medical", "healthcare", "clinical", "epidemiology", "disease",
            "vaccine", "pharmacy", "nutrition", "public health", "WHO", "health system",
            "maternal health", "child health", "mental health", "global health",
            "health policy", "health security", "pandemic", "outbreak", "epidemiologist",
            "world health organization", "health product access", "health programs",
        ],
        "support_keywords": [
            "hospital", "patient", "treatment", "diagnosis", "prevention", "immunization",
            "health promotion", "primary healthcare", "universal health coverage",
            "health equity", "health research", "medical research", "clinical trial",
            "health data", "health information", "telemedicine", "digital health",
        ],
        "context_pairs": [
            ["public", "health"], ["maternal", "health"], ["mental", "health"],
            ["disease", "prevention"], ["health", "systems"], ["global", "health"],
            ["health", "policy"], ["universal", "coverage"],
        ],
    },
    {
        "id": "agriculture-food-security",
        "name": "Agriculture & Food Security",
        "description": "Agricultural development, food systems, rural development, livestock, fisheries",
        "core_keywords": [
            "agriculture", "food security", "farming", "rural development", "livestock",
            "fisheries", "food systems", "agricultural development", "FAO", "IFAD",
            "WFP", "rural", "crops", "agribusiness", "aquaculture", "food production",
            "agricultural economics", "land management", "irrigation", "soil", "seeds",
        ],
        "support_keywords": [
            "food policy", "nutrition security", "smallholder farmers", "value chains",
            "agricultural extension", "farm management", "crop production", "animal husbandry",
            "sustainable agriculture", "organic farming", "precision agriculture",
            "food safety", "post-harvest", "agricultural research", "agtech",
        ],
        "context_pairs": [
            ["food", "security"], ["rural", "development"], ["agricultural", "development"],
            ["food", "systems"], ["value", "chains"], ["smallholder", "farmers"],
            ["food", "production"], ["agricultural", "economics"],
        ],
    },
    {
        "id": "education-development",
        "name": "Education & Development",
        "description": "Education, training, capacity building, youth development, skills development",
        "core_keywords": [
            "education", "training", "learning", "capacity building", "curriculum",
            "teaching", "academic", "scholarship", "skill development", "knowledge management",
            "educational", "school", "university", "literacy", "numeracy", "youth",
            "technical education", "vocational training", "adult education", "youth development",
        ],
        "support_keywords": [
            "pedagogy", "educational technology", "e-learning", "distance learning",
            "quality education", "inclusive education", "educational planning",
            "teacher training", "educational assessment", "learning outcomes",
            "educational policy", "higher education", "early childhood education",
        ],
        "context_pairs": [
            ["capacity", "building"], ["skill", "development"], ["quality", "education"],
            ["teacher", "training"], ["educational", "policy"], ["technical", "education"],
            ["adult", "education"], ["distance", "learning"], ["youth", "development"],
        ],
    },
    {
        "id": "social-affairs-human-rights",
        "name": "Social Affairs & Human Rights",
        "description": "Human rights, gender equality, social inclusion, child protection, social development",
        "core_keywords": [
            "human rights", "gender", "women", "equality", "inclusion", "diversity",
            "disability", "social protection", "empowerment", "child protection",
            "marginalized", "vulnerable", "gender equality", "women empowerment",
            "social inclusion", "inclusive", "equity", "discrimination", "social development",
        ],
        "support_keywords": [
            "gender mainstreaming", "women leadership", "girls education",
            "gender-based violence", "social cohesion", "minority rights",
            "indigenous peoples", "LGBTI", "accessibility", "social justice",
            "human dignity", "cultural diversity", "social affairs",
        ],
        "context_pairs": [
            ["human", "rights"], ["gender", "equality"], ["women", "empowerment"],
            ["social", "inclusion"], ["gender", "mainstreaming"], ["vulnerable", "groups"],
            ["social", "protection"], ["inclusive", "development"], ["child", "protection"],
        ],
    },
    {
        "id": "peace-security",
        "name": "Peace & Security",
        "description": "Peacekeeping, political affairs, disarmament, security sector reform, conflict prevention",
        "core_keywords": [
            "peace", "security", "peacekeeping", "peacebuilding", "political affairs",
            "political analysis", "political officer", "political advisor", "conflict prevention",
            "mediation", "conflict resolution", "peace operations", "security council",
            "disarmament", "stabilization", "ceasefire", "DDR", "security sector reform",
            "political reporting", "political coordination", "political research", "military",
            "police", "uniformed personnel",
        ],
        "support_keywords": [
            "conflict analysis", "peace processes", "political dialogue", "reconciliation",
            "transitional justice", "election monitoring", "political transition",
            "security assessment", "peace agreement", "political settlement",
            "diplomatic engagement", "political mapping", "stakeholder analysis",
            "political strategy", "peace dividend", "political economy",
        ],
        "context_pairs": [
            ["political", "affairs"], ["peace", "operations"], ["conflict", "prevention"],
            ["security", "council"], ["peace", "building"], ["political", "analysis"],
            ["conflict", "resolution"], ["peace", "process"], ["security", "sector"],
        ],
    },
    {
        "id": "humanitarian-emergency",
        "name": "Humanitarian & Emergency",
        "description": "Emergency response, humanitarian coordination, refugee assistance, disaster response",
        "core_keywords": [
            "humanitarian", "emergency", "crisis", "disaster", "response", "relief",
            "refugee", "UNHCR", "recovery", "resilience", "humanitarian aid",
            "disaster risk reduction", "emergency preparedness", "humanitarian coordination",
            "humanitarian assistance", "displacement", "migration",
        ],
        "support_keywords": [
            "emergency response", "disaster management", "risk reduction", "early warning",
            "contingency planning", "protection", "food security", "shelter", "WASH",
            "logistics", "humanitarian access", "camp management", "humanitarian principles",
            "humanitarian financing",
        ],
        "context_pairs": [
            ["humanitarian", "assistance"], ["emergency", "response"], ["disaster", "relief"],
            ["humanitarian", "coordination"], ["risk", "reduction"], ["emergency", "preparedness"],
            ["humanitarian", "aid"], ["disaster", "management"],
        ],
    },
    {
        "id": "governance-rule-of-law",
        "name": "Governance & Rule of Law",
        "description": "Democratic governance, justice, rule of law, elections, public administration",
        "core_keywords": [
            "governance", "rule of law", "justice", "elections", "democracy",
            "democratic governance", "public administration", "institutional",
            "anti-corruption", "transparency", "accountability", "public sector",
            "institutional development", "public management", "regulatory", "legislative",
            "electoral", "judicial", "courts", "justice sector",
        ],
        "support_keywords": [
            "public policy", "governance reform", "institutional capacity",
            "public service", "civil service", "decentralization", "local governance",
            "participatory governance", "e-governance", "regulatory framework",
            "institutional strengthening", "good governance", "government relations",
            "electoral assistance", "justice reform",
        ],
        "context_pairs": [
            ["rule", "law"], ["democratic", "governance"], ["public", "administration"],
            ["good", "governance"], ["institutional", "strengthening"], ["governance", "reform"],
            ["public", "sector"], ["justice", "sector"], ["electoral", "assistance"],
        ],
    },
    {
        "id": "legal-compliance",
        "name": "Legal & Compliance",
        "description": "Legal affairs, international law, contracts, ethics and compliance",
        "core_keywords": [
            "legal", "lawyer", "attorney", "counsel", "legal officer", "legal advisor",
            "legal affairs", "legal counsel", "legal specialist", "legal expert",
            "compliance officer", "ethics", "ethics officer", "international law",
            "litigation", "arbitration", "dispute resolution", "legal framework",
            "treaty", "treaties", "legal analysis", "jurisprudence", "legal review",
            "legal services", "legal support", "intellectual property", "corporate law",
            "labor law", "human rights law", "humanitarian law", "criminal law", "civil law",
        ],
        "support_keywords": [
            "due diligence", "legal research", "legal opinion", "legal advice",
            "regulatory compliance", "anti-fraud", "whistleblower", "legal drafting",
            "legal documentation", "legal instruments", "legal proceedings", "tribunal",
            "legal risk", "legal liability", "indemnification", "memorandum of understanding",
            "legal negotiation", "adjudication", "privileges and immunities",
            "host country agreement", "data protection", "privacy law", "GDPR",
            "investigation", "misconduct", "disciplinary", "sanctions",
        ],
        "context_pairs": [
            ["legal", "officer"], ["legal", "advisor"], ["legal", "counsel"],
            ["legal", "affairs"], ["international", "law"], ["legal", "framework"],
            ["compliance", "officer"], ["ethics", "officer"], ["legal", "analysis"],
            ["legal", "review"], ["due", "diligence"],
        ],
    },
    {
        "id": "economic-affairs-trade",
        "name": "Economic Affairs & Trade",
        "description": "Economic development, trade, finance, private sector, market development",
        "core_keywords": [
            "economic", "development", "finance", "investment", "trade", "private sector",
            "entrepreneurship", "market", "financial inclusion", "poverty reduction",
            "economic growth", "microfinance", "banking", "financial services",
            "economic policy", "fiscal", "monetary", "employment", "job creation",
            "trade facilitation", "market development", "investment promotion",
        ],
        "support_keywords": [
            "sustainable development", "inclusive growth", "value chain", "business development",
            "financial literacy", "access to finance", "economic empowerment",
            "livelihood", "income generation", "economic analysis", "macroeconomic",
            "SME development", "public-private partnership", "economic research",
            "trade policy", "commercial development",
        ],
        "context_pairs": [
            ["economic", "development"], ["private", "sector"], ["financial", "inclusion"],
            ["poverty", "reduction"], ["economic", "growth"], ["job", "creation"],
            ["market", "development"], ["trade", "facilitation"], ["investment", "promotion"],
        ],
    },
    {
        "id": "policy-strategic-planning",
        "name": "Policy & Strategic Planning",
        "description": "Policy development, strategic planning, research, analysis, coordination",
        "core_keywords": [
            "policy", "strategy", "planning", "analysis", "coordination", "strategic planning",
            "policy development", "policy analysis", "strategic analysis", "research",
            "policy research", "strategic coordination", "planning officer", "policy officer",
            "strategy officer", "programme planning", "strategic management",
        ],
        "support_keywords": [
            "policy coordination", "strategic direction", "policy implementation",
            "strategic initiatives", "policy review", "strategic assessment",
            "planning coordination", "policy advisory", "strategic advisory",
            "results-based management", "monitoring and evaluation", "strategic monitoring",
        ],
        "context_pairs": [
            ["policy", "development"], ["strategic", "planning"], ["policy", "analysis"],
            ["strategic", "analysis"], ["policy", "coordination"], ["strategic", "coordination"],
            ["policy", "research"], ["strategic", "management"],
        ],
    },
    {
        "id": "communications-partnerships",
        "name": "Communications & Partnerships",
        "description": "Public information, media, advocacy, partnerships, resource mobilization",
        "core_keywords": [
            "communication", "communications", "advocacy", "media", "public information", "outreach",
            "awareness", "campaign", "social media", "journalism", "partnership",
            "public relations", "stakeholder engagement", "knowledge sharing",
            "information management", "content creation", "partnerships", "donor relations",
            "resource mobilization", "partnership development",
        ],
        "support_keywords": [
            "strategic communication", "behavior change", "social mobilization",
            "community engagement", "multimedia", "digital communication",
            "advocacy strategy", "messaging", "storytelling", "brand management",
            "external relations", "fundraising", "visibility",
        ],
        "context_pairs": [
            ["strategic", "communication"], ["public", "information"], ["social", "media"],
            ["stakeholder", "engagement"], ["advocacy", "campaign"], ["behavior", "change"],
            ["community", "engagement"], ["knowledge", "sharing"], ["partnership", "development"],
        ],
    },
    {
        "id": "operations-administration",
        "name": "Operations & Administration",
        "description": "HR, finance, procurement, general administration, facilities, travel",
        "core_keywords": [
            "administrative", "administration", "administrative support", "staff assistant",
            "office management", "HR", "human resources", "finance", "procurement",
            "facilities", "travel", "support", "operational", "budget management",
            "financial analysis", "budget", "financial management", "treasury",
            "accounting", "financial planning", "budget planning", "financial reporting",
            "driver", "vehicle management", "fleet maintenance", "transport services",
        ],
        "support_keywords": [
            "project management", "resource management", "vendor management",
            "contract management", "quality assurance", "compliance",
            "business continuity", "risk management", "asset management",
            "facility management", "event management", "budget monitoring",
            "expenditure monitoring", "financial control", "cost management",
            "budget administration", "financial operations", "cash management",
        ],
        "context_pairs": [
            ["human", "resources"], ["project", "management"], ["budget", "management"],
            ["operations", "management"], ["facility", "management"], ["resource", "management"],
            ["administrative", "support"], ["financial", "management"],
        ],
    },
    {
        "id": "supply-chain-logistics",
        "name": "Supply Chain & Logistics",
        "description": "Logistics, supply chain, warehouse, fleet management, distribution",
        "core_keywords": [
            "logistics", "supply chain", "supply", "warehouse", "distribution",
            "fleet management", "transport", "shipping", "freight", "customs",
            "inventory", "procurement logistics", "supply planning", "logistics coordination",
            "supply operations", "logistics management", "supply management",
        ],
        "support_keywords": [
            "vendor management", "supplier relations", "inventory management",
            "distribution management", "transportation management", "warehousing",
            "logistics planning", "supply planning", "demand planning",
            "cold chain", "humanitarian logistics", "field logistics",
        ],
        "context_pairs": [
            ["supply", "chain"], ["supply", "management"], ["logistics", "coordination"],
            ["fleet", "management"], ["distribution", "management"], ["inventory", "management"],
            ["logistics", "planning"], ["supply", "planning"],
        ],
    },
    {
        "id": "translation-interpretation",
        "name": "Translation & Interpretation",
        "description": "Language services, translation, interpretation, localization, and linguistic support",
        "core_keywords": [
            "translator", "interpreter", "translation", "interpretation", "linguistic", "language",
            "bilingual", "multilingual", "localization", "linguist", "language specialist",
            "consecutive interpretation", "simultaneous interpretation", "sign language",
            "language services", "translation services", "interpreter services",
            "field interpreter", "arabic-english", "english-arabic",
        ],
        "support_keywords": [
            "language skills", "fluency", "native speaker", "language proficiency",
            "cultural adaptation", "terminology", "glossary", "translation memory",
            "cultural mediation", "language coordination", "translation quality",
            "linguistic review", "proofreading", "editing", "subtitling",
            "voice-over", "transcription", "language training", "conference interpretation",
        ],
        "context_pairs": [
            ["language", "services"], ["translation", "interpretation"], ["linguistic", "support"],
            ["language", "specialist"], ["cultural", "adaptation"], ["language", "coordination"],
            ["consecutive", "interpretation"], ["simultaneous", "interpretation"],
            ["field", "interpreter"], ["arabic", "english"],
        ],
    },
]
