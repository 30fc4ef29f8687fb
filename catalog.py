"""
Content Catalog - Lessons and quizzes with their topic tags.

The adaptive engine only needs read-only metadata (slug/id, title, tags);
lesson bodies and quiz questions are rendered elsewhere.

Data sources:
    - built-in astronomy catalog (default)
    - a JSON file {"lessons": [...], "quizzes": [...]} via Catalog.from_file
"""

import json
from pathlib import Path
from typing import Dict, List, Optional

from adaptive.models import CatalogLesson, CatalogQuiz


DEFAULT_LESSONS: List[CatalogLesson] = [
    CatalogLesson(
        slug="solar-system-intro",
        title="The Solar System - An Introduction",
        category="solar-system",
        tags=["solar_system_basics", "planets", "orbits", "moons", "asteroids_comets", "scales_distances"],
    ),
    CatalogLesson(
        slug="life-of-stars",
        title="The Life of Stars",
        category="stars",
        tags=["stars_basics", "stellar_evolution", "star_types"],
    ),
    CatalogLesson(
        slug="galaxies-of-the-universe",
        title="Galaxies of the Universe",
        category="galaxies",
        tags=["galaxies", "black_holes"],
    ),
    CatalogLesson(
        slug="how-rockets-work",
        title="How Do Rockets Work?",
        category="rockets",
        tags=["rockets", "physics_newton", "gravity", "space_missions"],
    ),
    CatalogLesson(
        slug="space-telescopes",
        title="Space Telescopes",
        category="telescopes",
        tags=["telescopes", "light_spectrum"],
    ),
]

DEFAULT_QUIZZES: List[CatalogQuiz] = [
    CatalogQuiz(
        id="quick-quiz-1",
        title="Quick Quiz - Space",
        category="quick",
        tags=["planets", "galaxies", "scales_distances", "light_spectrum", "moons"],
    ),
    CatalogQuiz(
        id="solar-system-quiz",
        title="Quiz: The Solar System",
        category="solar-system",
        tags=["solar_system_basics", "planets", "asteroids_comets"],
    ),
    CatalogQuiz(
        id="stars-quiz",
        title="Quiz: Stars and Their Lives",
        category="stars",
        tags=["stars_basics", "stellar_evolution", "star_types"],
    ),
    CatalogQuiz(
        id="space-exploration-quiz",
        title="Quiz: Space Exploration",
        category="exploration",
        tags=["space_missions", "rockets"],
    ),
]


class Catalog:
    """Read-only lesson and quiz metadata."""

    def __init__(self, lessons: Optional[List[CatalogLesson]] = None,
                 quizzes: Optional[List[CatalogQuiz]] = None):
        self.lessons: List[CatalogLesson] = list(lessons if lessons is not None else DEFAULT_LESSONS)
        self.quizzes: List[CatalogQuiz] = list(quizzes if quizzes is not None else DEFAULT_QUIZZES)
        self._lessons_by_slug: Dict[str, CatalogLesson] = {l.slug: l for l in self.lessons}
        self._quizzes_by_id: Dict[str, CatalogQuiz] = {q.id: q for q in self.quizzes}

    @classmethod
    def from_file(cls, file_path) -> "Catalog":
        """Load catalog metadata from a JSON file."""
        with open(Path(file_path), "r", encoding="utf-8") as f:
            data = json.load(f)

        lessons = [
            CatalogLesson(
                slug=item["slug"],
                title=item.get("title", item["slug"]),
                category=item.get("category", ""),
                tags=list(item.get("tags", [])),
            )
            for item in data.get("lessons", [])
        ]
        quizzes = [
            CatalogQuiz(
                id=item["id"],
                title=item.get("title", item["id"]),
                category=item.get("category", ""),
                tags=list(item.get("tags", [])),
            )
            for item in data.get("quizzes", [])
        ]
        return cls(lessons, quizzes)

    def get_lesson(self, slug: str) -> Optional[CatalogLesson]:
        return self._lessons_by_slug.get(slug)

    def get_quiz(self, quiz_id: str) -> Optional[CatalogQuiz]:
        return self._quizzes_by_id.get(quiz_id)
