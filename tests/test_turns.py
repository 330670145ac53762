import random

from app.domain.draft import turns
from app.domain.draft.models import (
    MAX_ROUNDS,
    DraftingState,
    FinishedState,
    GradingState,
    SetupState,
)
from app.domain.draft.pool import eligible_pool, excluded_ids
from conftest import make_catalog

UNIS = ["Naruto", "One Piece"]


def _drafting(players=("a", "b"), catalog=None):
    catalog = catalog or make_catalog()
    st = turns.init_setup_state(list(players))
    st, err = turns.set_universes(st, UNIS, is_host=True)
    assert err is None
    st, err = turns.start_draft(st, catalog, is_host=True)
    assert err is None
    return st, catalog


def _first_empty(state, uid):
    return next(i for i, c in enumerate(state.player_teams[uid]) if c is None)


def _draw_and_place(state, catalog, rng=None):
    uid = turns.active_player_id(state)
    state, err = turns.draw(state, uid, catalog, rng)
    assert err is None
    state, err = turns.place(state, uid, _first_empty(state, uid))
    assert err is None
    return state


def test_init_setup_state_dedupes_and_seeds_players():
    st = turns.init_setup_state(["a", "b", "a", ""])
    assert isinstance(st, SetupState)
    assert st.turn_order == ["a", "b"]
    assert st.player_teams == {"a": [None] * 5, "b": [None] * 5}
    assert st.skips_remaining == {"a": 2, "b": 2}


def test_setup_moves_are_host_only():
    st = turns.init_setup_state(["a", "b"])
    same, err = turns.set_universes(st, UNIS, is_host=False)
    assert err == "NOT_HOST"
    assert same is st

    st, _ = turns.set_universes(st, UNIS, is_host=True)
    same, err = turns.start_draft(st, make_catalog(), is_host=False)
    assert err == "NOT_HOST"
    assert isinstance(same, SetupState)


def test_start_draft_refused_when_pool_too_small():
    catalog = make_catalog(("Tiny",), per_universe=8) + make_catalog(("Big",), per_universe=20)
    st = turns.init_setup_state(["a", "b"])
    st, _ = turns.set_universes(st, ["Tiny"], is_host=True)

    out, err = turns.start_draft(st, catalog, is_host=True)

    assert err == "POOL_TOO_SMALL"
    assert out is st
    assert out.status == "SETUP"


def test_start_draft_initial_values():
    st, _ = _drafting()
    assert isinstance(st, DraftingState)
    assert st.round == 1
    assert st.current_turn == 0
    assert st.current_draw is None
    assert st.skips_remaining == {"a": 2, "b": 2}


def test_two_players_full_match_takes_ten_places():
    st, catalog = _drafting()
    rng = random.Random(3)
    places = 0
    while isinstance(st, DraftingState):
        st = _draw_and_place(st, catalog, rng)
        places += 1
        if isinstance(st, DraftingState):
            assert st.round == places // 2 + 1

    assert places == 10
    assert isinstance(st, GradingState)
    assert st.round == MAX_ROUNDS + 1
    for roster in st.player_teams.values():
        assert all(c is not None for c in roster)

    done, err = turns.grade(st)
    assert err is None
    assert isinstance(done, FinishedState)
    assert done.results.winner_id in ("a", "b")


def test_turn_advances_by_one_on_every_place():
    st, catalog = _drafting(("a", "b", "c"))
    rng = random.Random(11)
    while isinstance(st, DraftingState):
        before = st.current_turn
        st = _draw_and_place(st, catalog, rng)
        if isinstance(st, DraftingState):
            assert st.current_turn == (before + 1) % 3


def test_only_active_player_can_draw():
    st, catalog = _drafting()
    same, err = turns.draw(st, "b", catalog)
    assert err == "NOT_YOUR_TURN"
    assert same is st


def test_second_draw_is_rejected_and_state_unchanged():
    st, catalog = _drafting()
    st, err = turns.draw(st, "a", catalog, random.Random(1))
    assert err is None
    held = st.current_draw

    same, err = turns.draw(st, "a", catalog, random.Random(2))

    assert err == "ALREADY_DRAWN"
    assert same is st
    assert same.current_draw == held


def test_place_validation():
    st, catalog = _drafting()
    _, err = turns.place(st, "a", 0)
    assert err == "NO_DRAW"

    st, _ = turns.draw(st, "a", catalog)
    _, err = turns.place(st, "a", 5)
    assert err == "BAD_SLOT"
    _, err = turns.place(st, "a", -1)
    assert err == "BAD_SLOT"


def test_filled_slot_is_never_overwritten():
    st, catalog = _drafting()
    st, _ = turns.draw(st, "a", catalog)
    st, _ = turns.place(st, "a", 0)
    kept = st.player_teams["a"][0]

    st, _ = turns.draw(st, "b", catalog)
    st, _ = turns.place(st, "b", 0)
    st, _ = turns.draw(st, "a", catalog)
    same, err = turns.place(st, "a", 0)

    assert err == "SLOT_TAKEN"
    assert same.player_teams["a"][0] == kept


def test_drafted_ids_never_drawn_again():
    st, catalog = _drafting(("a", "b", "c"))
    rng = random.Random(5)
    while isinstance(st, DraftingState):
        uid = turns.active_player_id(st)
        taken = {c.id for roster in st.player_teams.values() for c in roster if c is not None}
        st, err = turns.draw(st, uid, catalog, rng)
        assert err is None
        assert st.current_draw.id not in taken
        st, _ = turns.place(st, uid, _first_empty(st, uid))


def test_skip_budget_runs_out():
    st, catalog = _drafting()
    for _ in range(2):
        st, _ = turns.draw(st, "a", catalog)
        st, err = turns.skip(st, "a")
        assert err is None
        st = _draw_and_place(st, catalog)

    st, _ = turns.draw(st, "a", catalog)
    same, err = turns.skip(st, "a")

    assert err == "NO_SKIPS"
    assert same is st
    assert st.skips_remaining["a"] == 0


def test_skip_without_draw_rejected():
    st, _ = _drafting()
    _, err = turns.skip(st, "a")
    assert err == "NO_DRAW"


def test_skipped_character_is_eligible_again():
    st, catalog = _drafting()
    st, _ = turns.draw(st, "a", catalog, random.Random(9))
    skipped = st.current_draw
    st, err = turns.skip(st, "a")

    assert err is None
    assert st.current_draw is None
    assert skipped.id not in excluded_ids(st)
    assert skipped in eligible_pool(catalog, st)


def test_skip_passes_turn_without_ticking_round():
    st, catalog = _drafting()
    st, _ = turns.draw(st, "a", catalog)
    st, _ = turns.skip(st, "a")
    assert turns.active_player_id(st) == "b"
    assert st.round == 1

    st = _draw_and_place(st, catalog)
    assert st.round == 1
    st = _draw_and_place(st, catalog)
    assert st.round == 2


def test_skipper_finishes_their_roster_before_grading():
    st, catalog = _drafting()
    st, _ = turns.draw(st, "a", catalog)
    st, _ = turns.skip(st, "a")
    while isinstance(st, DraftingState):
        st = _draw_and_place(st, catalog)

    assert isinstance(st, GradingState)
    assert all(c is not None for c in st.player_teams["a"])
    assert all(c is not None for c in st.player_teams["b"])


def test_departed_turn_holder_is_skipped():
    st, catalog = _drafting(("a", "b", "c"))
    st, _ = turns.draw(st, "a", catalog)

    st = turns.mark_departed(st, "a")

    assert st.departed == ["a"]
    assert st.current_draw is None
    assert turns.active_player_id(st) == "b"

    last_round = st.round
    while isinstance(st, DraftingState):
        assert turns.active_player_id(st) != "a"
        st = _draw_and_place(st, catalog)
        assert st.round >= last_round
        last_round = st.round

    assert isinstance(st, GradingState)
    assert st.player_teams["a"] == [None] * 5
    assert all(c is not None for c in st.player_teams["b"])
    assert all(c is not None for c in st.player_teams["c"])


def test_departed_waiting_player_loses_their_turns():
    st, catalog = _drafting(("a", "b", "c"))
    st = turns.mark_departed(st, "b")
    st = _draw_and_place(st, catalog)
    assert turns.active_player_id(st) == "c"


def test_everyone_leaving_ends_the_draft():
    st, _ = _drafting()
    st = turns.mark_departed(st, "a")
    assert turns.active_player_id(st) == "b"
    st = turns.mark_departed(st, "b")
    assert isinstance(st, GradingState)


def test_leaving_during_setup_drops_the_seat():
    st = turns.init_setup_state(["a", "b", "c"])
    st, _ = turns.set_universes(st, UNIS, is_host=True)
    st = turns.mark_departed(st, "b")

    st, err = turns.start_draft(st, make_catalog(), is_host=True)

    assert err is None
    assert st.turn_order == ["a", "c"]
    assert "b" not in st.player_teams


def test_grade_requires_grading():
    st, _ = _drafting()
    same, err = turns.grade(st)
    assert err == "NOT_GRADING"
    assert same is st


def test_full_roster_is_passed_over():
    st, catalog = _drafting()
    st, _ = turns.draw(st, "a", catalog)
    st, _ = turns.skip(st, "a")
    while isinstance(st, DraftingState) and not all(st.player_teams["b"]):
        st = _draw_and_place(st, catalog)

    # b is full, a still owes one pick and keeps the turn
    assert isinstance(st, DraftingState)
    assert turns.active_player_id(st) == "a"
    st = _draw_and_place(st, catalog)
    assert isinstance(st, GradingState)


def test_carry_departures_moves_the_turn_off_a_departed_seat():
    st, catalog = _drafting(("a", "b", "c"))
    st, _ = turns.draw(st, "a", catalog)

    carried = turns.carry_departures(st, ["a"])

    assert carried.departed == ["a"]
    assert carried.current_draw is None
    assert turns.active_player_id(carried) == "b"
    assert turns.carry_departures(carried, ["a"]) is carried


def test_carry_departures_into_a_graded_blob_only_records_them():
    st, catalog = _drafting()
    while isinstance(st, DraftingState):
        st = _draw_and_place(st, catalog)

    carried = turns.carry_departures(st, ["b"])

    assert isinstance(carried, GradingState)
    assert carried.departed == ["b"]
    assert carried.player_teams == st.player_teams
