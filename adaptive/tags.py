"""
Tag Taxonomy - Fixed set of astronomy topics.

Every lesson, quiz question and statistic is keyed by one of these tags.
Tags are never created at runtime; the declaration order below is the
taxonomy order used wherever a stable ordering is needed.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple


class AdaptiveTag(str, Enum):
    """Knowledge topic identifiers."""
    # Solar system
    SOLAR_SYSTEM_BASICS = "solar_system_basics"
    PLANETS = "planets"
    ORBITS = "orbits"
    MOONS = "moons"
    ASTEROIDS_COMETS = "asteroids_comets"

    # Stars
    STARS_BASICS = "stars_basics"
    STELLAR_EVOLUTION = "stellar_evolution"
    STAR_TYPES = "star_types"

    # Galaxies and cosmology
    GALAXIES = "galaxies"
    BLACK_HOLES = "black_holes"

    # Physics and units
    PHYSICS_NEWTON = "physics_newton"
    GRAVITY = "gravity"
    SCALES_DISTANCES = "scales_distances"
    LIGHT_SPECTRUM = "light_spectrum"

    # Technology
    ROCKETS = "rockets"
    TELESCOPES = "telescopes"
    SPACE_MISSIONS = "space_missions"


ALL_TAGS: Tuple[AdaptiveTag, ...] = tuple(AdaptiveTag)

TAG_LABELS: Dict[AdaptiveTag, str] = {
    AdaptiveTag.SOLAR_SYSTEM_BASICS: "Solar System Basics",
    AdaptiveTag.PLANETS: "Planets",
    AdaptiveTag.ORBITS: "Orbits and Motion",
    AdaptiveTag.MOONS: "Moons",
    AdaptiveTag.ASTEROIDS_COMETS: "Asteroids and Comets",
    AdaptiveTag.STARS_BASICS: "Star Basics",
    AdaptiveTag.STELLAR_EVOLUTION: "Stellar Evolution",
    AdaptiveTag.STAR_TYPES: "Types of Stars",
    AdaptiveTag.GALAXIES: "Galaxies",
    AdaptiveTag.BLACK_HOLES: "Black Holes",
    AdaptiveTag.PHYSICS_NEWTON: "Newtonian Physics",
    AdaptiveTag.GRAVITY: "Gravity",
    AdaptiveTag.SCALES_DISTANCES: "Scales and Distances",
    AdaptiveTag.LIGHT_SPECTRUM: "Light Spectrum",
    AdaptiveTag.ROCKETS: "Rockets",
    AdaptiveTag.TELESCOPES: "Telescopes",
    AdaptiveTag.SPACE_MISSIONS: "Space Missions",
}

# Display grouping only - has no effect on statistics
TAG_GROUPS: Dict[str, Dict] = {
    "solar_system": {
        "label": "Solar System",
        "tags": [
            AdaptiveTag.SOLAR_SYSTEM_BASICS,
            AdaptiveTag.PLANETS,
            AdaptiveTag.ORBITS,
            AdaptiveTag.MOONS,
            AdaptiveTag.ASTEROIDS_COMETS,
        ],
    },
    "stars": {
        "label": "Stars",
        "tags": [
            AdaptiveTag.STARS_BASICS,
            AdaptiveTag.STELLAR_EVOLUTION,
            AdaptiveTag.STAR_TYPES,
        ],
    },
    "cosmos": {
        "label": "Cosmos",
        "tags": [
            AdaptiveTag.GALAXIES,
            AdaptiveTag.BLACK_HOLES,
        ],
    },
    "physics": {
        "label": "Physics",
        "tags": [
            AdaptiveTag.PHYSICS_NEWTON,
            AdaptiveTag.GRAVITY,
            AdaptiveTag.SCALES_DISTANCES,
            AdaptiveTag.LIGHT_SPECTRUM,
        ],
    },
    "technology": {
        "label": "Technology",
        "tags": [
            AdaptiveTag.ROCKETS,
            AdaptiveTag.TELESCOPES,
            AdaptiveTag.SPACE_MISSIONS,
        ],
    },
}

DIFFICULTY_MAP: Dict[str, int] = {
    "beginner": 1,
    "intermediate": 2,
    "advanced": 3,
}

DIFFICULTY_LABELS: Dict[int, str] = {
    1: "Easy",
    2: "Medium",
    3: "Hard",
}

_TAG_VALUES = {tag.value for tag in ALL_TAGS}


def is_known_tag(value: str) -> bool:
    """True if value names a tag in the current taxonomy."""
    return value in _TAG_VALUES


def tag_label(value: str) -> str:
    """Display label for a tag, falling back to the raw id."""
    if is_known_tag(value):
        return TAG_LABELS[AdaptiveTag(value)]
    return value


def group_of(tag: str) -> Optional[str]:
    for group_id, group in TAG_GROUPS.items():
        if tag in group["tags"]:
            return group_id
    return None


def tag_order(tags: List[str]) -> List[str]:
    """Known tags from `tags`, deduplicated and in taxonomy order."""
    wanted = set(tags)
    return [tag.value for tag in ALL_TAGS if tag.value in wanted]
