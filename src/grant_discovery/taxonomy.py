"""Program taxonomy shared by every discovery entry point.

Keywords are lowercase and matched as plain substrings, so short keywords
such as ``"art"`` also hit inside longer words (``"party"``) and ``"mat"``
(medication-assisted treatment) hits ``"information"`` or ``"format"``. Bump
``TAXONOMY_VERSION`` whenever a list changes; it is stamped on every run
summary.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

logger = logging.getLogger(__name__)

TAXONOMY_VERSION = "2025.12.2"

TAXONOMY: dict[str, tuple[str, ...]] = {
    "first-responders": (
        "first responder",
        "emergency services",
        "law enforcement",
        "fire department",
        "ems",
        "police",
        "mental health first responder",
        "ptsd",
        "trauma",
        "paramedic",
        "firefighter",
        "sheriff",
        "public safety",
        "911",
        "dispatch",
    ),
    "veterans-transition": (
        "veteran",
        "military",
        "service member",
        "transition",
        "career",
        "employment",
        "reintegration",
        "wounded warrior",
        "gi bill",
        "voc rehab",
        "veteran employment",
        "military spouse",
        "service-connected",
        "discharge",
    ),
    "together-anywhere": (
        "military family",
        "deployment",
        "family connection",
        "virtual connection",
        "distance",
        "separation",
        "family readiness",
        "military child",
        "pcs",
        "remote family",
        "video communication",
    ),
    "faith-communities": (
        "faith",
        "religious",
        "church",
        "congregation",
        "ministry",
        "spiritual",
        "worship",
        "interfaith",
        "synagogue",
        "mosque",
        "temple",
        "faith-based",
        "religious organization",
        "clergy",
    ),
    "senior-connect": (
        "senior",
        "elderly",
        "aging",
        "older adult",
        "isolation",
        "loneliness",
        "geriatric",
        "medicare",
        "social security",
        "aarp",
        "nursing home",
        "assisted living",
        "elder care",
        "dementia",
        "alzheimer",
    ),
    "foster-care-network": (
        "foster",
        "foster care",
        "child welfare",
        "adoption",
        "kinship",
        "family services",
        "child protective",
        "dcfs",
        "caseworker",
        "foster parent",
        "aging out",
        "permanency",
        "reunification",
    ),
    "rural-health": (
        "rural",
        "telehealth",
        "telemedicine",
        "underserved",
        "healthcare access",
        "remote",
        "frontier",
        "critical access hospital",
        "fqhc",
        "community health center",
        "health professional shortage",
        "medically underserved",
    ),
    "mental-health-youth": (
        "youth mental health",
        "adolescent",
        "teen",
        "child mental health",
        "school",
        "student",
        "pediatric",
        "youth suicide",
        "bullying",
        "school counselor",
        "behavioral health",
        "youth crisis",
        "early intervention",
    ),
    "addiction-recovery": (
        "addiction",
        "recovery",
        "substance abuse",
        "opioid",
        "treatment",
        "sobriety",
        "overdose",
        "narcan",
        "mat",
        "medication assisted",
        "detox",
        "rehab",
        "sober living",
        "harm reduction",
        "fentanyl",
        "drug court",
    ),
    "animal-rescue": (
        "animal",
        "rescue",
        "shelter",
        "pet",
        "welfare",
        "humane",
        "adoption",
        "spay",
        "neuter",
        "veterinary",
        "animal control",
        "wildlife",
        "sanctuary",
        "no-kill",
        "animal cruelty",
    ),
    "green-earth": (
        "environment",
        "climate",
        "sustainability",
        "conservation",
        "green",
        "eco",
        "renewable",
        "solar",
        "wind",
        "clean energy",
        "carbon",
        "recycling",
        "pollution",
        "water quality",
        "air quality",
        "endangered species",
    ),
    "disaster-relief": (
        "disaster",
        "emergency",
        "relief",
        "response",
        "recovery",
        "resilience",
        "fema",
        "hurricane",
        "flood",
        "wildfire",
        "tornado",
        "earthquake",
        "emergency management",
        "preparedness",
        "mitigation",
    ),
    "small-business": (
        "small business",
        "entrepreneur",
        "local business",
        "economic development",
        "sbir",
        "sttr",
        "minority business",
        "women-owned",
        "startup",
        "microloan",
        "sba",
        "business incubator",
        "accelerator",
        "venture",
    ),
    "nonprofit-toolkit": (
        "nonprofit",
        "ngo",
        "charity",
        "foundation",
        "capacity building",
        "organizational development",
        "501c3",
        "philanthropy",
        "grant writing",
        "board development",
        "volunteer management",
    ),
    "education-access": (
        "education",
        "student",
        "learning",
        "school",
        "academic",
        "stem",
        "scholarship",
        "tutoring",
        "literacy",
        "title i",
        "head start",
        "pell grant",
        "higher education",
        "k-12",
        "early childhood",
    ),
    "digital-literacy": (
        "digital literacy",
        "technology",
        "computer",
        "internet",
        "digital divide",
        "access",
        "broadband",
        "connectivity",
        "digital skills",
        "coding",
        "stem education",
        "tech training",
        "digital inclusion",
    ),
    "artists-collective": (
        "artist",
        "art",
        "creative",
        "cultural",
        "arts",
        "visual arts",
        "painting",
        "sculpture",
        "gallery",
        "museum",
        "arts education",
        "public art",
        "arts council",
        "nea",
    ),
    "musicians-guild": (
        "music",
        "musician",
        "performing arts",
        "concert",
        "orchestra",
        "band",
        "choir",
        "music education",
        "instrument",
        "composer",
        "recording",
        "live performance",
        "symphony",
    ),
    "community-journalism": (
        "journalism",
        "news",
        "media",
        "local news",
        "press",
        "reporter",
        "newspaper",
        "broadcast",
        "investigative",
        "community media",
        "press freedom",
        "media literacy",
    ),
    "food-security": (
        "food",
        "hunger",
        "nutrition",
        "food bank",
        "food insecurity",
        "meal",
        "snap",
        "wic",
        "food pantry",
        "food desert",
        "school lunch",
        "community garden",
        "farm to table",
        "feeding program",
    ),
}


def resolve_tags(
    requested: Iterable[str] | None,
    taxonomy: dict[str, tuple[str, ...]] = TAXONOMY,
) -> list[str]:
    if not requested:
        return list(taxonomy)
    wanted = {tag.strip().lower() for tag in requested if tag and tag.strip()}
    unknown = sorted(wanted - set(taxonomy))
    if unknown:
        logger.warning("Ignoring unknown taxonomy tags: %s", ", ".join(unknown))
    resolved = [tag for tag in taxonomy if tag in wanted]
    return resolved or list(taxonomy)


def query_keywords(
    tags: Iterable[str],
    per_tag: int = 5,
    limit: int = 25,
    taxonomy: dict[str, tuple[str, ...]] = TAXONOMY,
) -> list[str]:
    keywords: list[str] = []
    for tag in tags:
        keywords.extend(taxonomy.get(tag, ())[:per_tag])
    return list(dict.fromkeys(keywords))[:limit]
