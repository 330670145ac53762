import random

from app.domain.draft.models import DraftingState
from app.domain.draft.pool import eligible_pool, excluded_ids, filter_catalog, list_universes, sample_character
from conftest import make_catalog


def _state(catalog, universes=("Naruto",), teams=None, draw=None):
    return DraftingState(
        selected_universes=list(universes),
        turn_order=["a", "b"],
        player_teams=teams or {"a": [None] * 5, "b": [None] * 5},
        current_draw=draw,
    )


def test_list_universes_sorted_unique():
    catalog = make_catalog(("One Piece", "Naruto"), per_universe=2)
    assert list_universes(catalog) == ["Naruto", "One Piece"]


def test_filter_by_selected_universes():
    catalog = make_catalog()
    assert {c.anime_universe for c in filter_catalog(catalog, ["Naruto"])} == {"Naruto"}
    assert filter_catalog(catalog, []) == []


def test_rostered_and_drawn_ids_excluded():
    catalog = make_catalog()
    naruto = filter_catalog(catalog, ["Naruto"])
    teams = {"a": [naruto[0], None, None, None, None], "b": [None, naruto[1], None, None, None]}
    st = _state(catalog, teams=teams, draw=naruto[2])

    assert excluded_ids(st) == {naruto[0].id, naruto[1].id, naruto[2].id}
    pool = eligible_pool(catalog, st)
    assert len(pool) == len(naruto) - 3
    assert all(c.anime_universe == "Naruto" for c in pool)


def test_sample_uses_injected_rng():
    catalog = make_catalog()
    st = _state(catalog)
    first = sample_character(catalog, st, random.Random(42))
    again = sample_character(catalog, st, random.Random(42))
    assert first == again
    assert first.anime_universe == "Naruto"


def test_exhausted_pool_returns_none():
    catalog = make_catalog(("Naruto",), per_universe=3)
    teams = {"a": catalog[:2] + [None] * 3, "b": [catalog[2]] + [None] * 4}
    st = _state(catalog, teams=teams)
    assert sample_character(catalog, st) is None
