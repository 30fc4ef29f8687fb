"""Tests for catalog.py"""

import json

from adaptive.tags import is_known_tag
from catalog import Catalog


def test_default_catalog_uses_known_tags(catalog):
    assert len(catalog.lessons) == 5
    assert len(catalog.quizzes) == 4
    for item in catalog.lessons + catalog.quizzes:
        assert item.tags
        assert all(is_known_tag(tag) for tag in item.tags)


def test_lookup(catalog):
    assert catalog.get_lesson("how-rockets-work").title == "How Do Rockets Work?"
    assert catalog.get_quiz("stars-quiz").category == "stars"
    assert catalog.get_lesson("missing") is None
    assert catalog.get_quiz("missing") is None


def test_from_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({
        "lessons": [
            {"slug": "moon-phases", "title": "Moon Phases", "category": "solar-system", "tags": ["moons"]},
            {"slug": "bare"},
        ],
        "quizzes": [{"id": "moon-quiz", "tags": ["moons", "orbits"]}],
    }), encoding="utf-8")

    catalog = Catalog.from_file(path)

    assert [l.slug for l in catalog.lessons] == ["moon-phases", "bare"]
    assert catalog.get_lesson("bare").title == "bare"
    assert catalog.get_lesson("bare").tags == []
    assert catalog.get_quiz("moon-quiz").tags == ["moons", "orbits"]


def test_empty_lists_are_respected():
    catalog = Catalog(lessons=[], quizzes=[])
    assert catalog.lessons == []
    assert catalog.quizzes == []
