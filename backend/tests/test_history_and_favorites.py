"""
Generation history and favorites: ordering, pagination, ownership and
snapshot independence.
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from backend.core.errors import ConflictError, NotFoundError, ValidationError
from backend.features.favorites import service as favorites
from backend.features.hooks import history, persistence
from backend.models.entitlement import ModelClass
from backend.tests.mocks import make_record


@pytest.fixture
def stored_generations(make_user, now, policy_config):
    """Five generations for u1, one minute apart, plus one for someone else."""
    ent = make_user("u1", tier="starter", subscription_status="active")
    other = make_user("u2", tier="starter", subscription_status="active")
    for i in range(5):
        record = make_record(now + timedelta(minutes=i), record_id=f"gen_{i}")
        persistence.commit("u1", record, ModelClass.DRAFT, entitlement=ent, now=now, config=policy_config)
    persistence.commit(
        "u2", make_record(now, user_id="u2", record_id="gen_other"), ModelClass.DRAFT, entitlement=other, now=now, config=policy_config
    )


class TestHistory:
    def test_newest_first_with_pagination(self, stored_generations):
        records, page = history.list_generations("u1", page=1, limit=2)
        assert [r.id for r in records] == ["gen_4", "gen_3"]
        assert page.total_items == 5
        assert page.total_pages == 3
        assert page.has_next and not page.has_prev

        records, page = history.list_generations("u1", page=3, limit=2)
        assert [r.id for r in records] == ["gen_0"]
        assert page.has_prev and not page.has_next

    def test_same_timestamp_is_ordered_by_id(self, make_user, now, policy_config):
        ent = make_user("u3", tier="pro", subscription_status="active")
        for record_id in ("gen_b", "gen_a", "gen_c"):
            persistence.commit(
                "u3", make_record(now, user_id="u3", record_id=record_id), ModelClass.DRAFT, entitlement=ent, now=now, config=policy_config
            )
        records, _ = history.list_generations("u3")
        assert [r.id for r in records] == ["gen_c", "gen_b", "gen_a"]

    def test_empty_history(self):
        records, page = history.list_generations("nobody")
        assert records == []
        assert page.total_pages == 0
        assert not page.has_next and not page.has_prev

    @pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (1, 101), ("abc", 10)])
    def test_invalid_pagination(self, page, limit):
        with pytest.raises(ValidationError):
            history.list_generations("u1", page=page, limit=limit)

    def test_records_round_trip_hooks(self, stored_generations, now):
        record = history.get_generation("u1", "gen_2")
        assert record.hooks[0].verbal_hook == "Stop doing this every morning"
        assert record.created_at == now + timedelta(minutes=2)
        assert record.strategy_summary == {"confidence_score": 92}

    def test_get_is_owner_scoped(self, stored_generations):
        with pytest.raises(NotFoundError):
            history.get_generation("u1", "gen_other")

    def test_delete_is_owner_scoped(self, stored_generations):
        with pytest.raises(NotFoundError):
            history.delete_generation("u1", "gen_other")
        history.delete_generation("u1", "gen_0")
        with pytest.raises(NotFoundError):
            history.get_generation("u1", "gen_0")


SNAPSHOT = {"verbal_hook": "Stop doing this every morning", "visual_hook": "Stop.", "score": 82}


class TestFavorites:
    def test_add_and_list(self, now):
        favorites.add_favorite(
            "u1", hook_snapshot=SNAPSHOT, framework="Pattern Interrupt", platform_notes="Lead with it",
            generation_id="gen_1", topic="Mornings", platform="tiktok", now=now,
        )
        items, page = favorites.list_favorites("u1")
        assert len(items) == 1
        assert items[0].hook_snapshot == SNAPSHOT
        assert page.total_items == 1

    def test_snapshot_survives_generation_delete(self, stored_generations, now):
        record = history.get_generation("u1", "gen_1")
        hook = record.hooks[0].model_dump(mode="json")
        favorite = favorites.add_favorite(
            "u1", hook_snapshot=hook, framework=hook["framework"], platform_notes="Lead with it", generation_id="gen_1"
        )
        history.delete_generation("u1", "gen_1")
        items, _ = favorites.list_favorites("u1")
        assert [item.id for item in items] == [favorite.id]
        assert items[0].hook_snapshot["verbal_hook"] == hook["verbal_hook"]

    def test_snapshot_is_a_copy(self):
        snapshot = dict(SNAPSHOT)
        favorites.add_favorite("u1", hook_snapshot=snapshot, framework="F", platform_notes="N", generation_id="g")
        snapshot["verbal_hook"] = "mutated"
        items, _ = favorites.list_favorites("u1")
        assert items[0].hook_snapshot["verbal_hook"] == SNAPSHOT["verbal_hook"]

    def test_duplicate_is_conflict(self):
        favorites.add_favorite("u1", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N", generation_id="g")
        with pytest.raises(ConflictError):
            favorites.add_favorite("u1", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N", generation_id="g")

    def test_duplicate_detection_ignores_key_style_and_padding(self):
        favorites.add_favorite("u1", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N", generation_id="g")
        camel = {"verbalHook": "  Stop doing this every morning ", "score": 82}
        with pytest.raises(ConflictError):
            favorites.add_favorite("u1", hook_snapshot=camel, framework="F", platform_notes="N", generation_id="g")

    def test_same_hook_from_another_generation_is_fine(self):
        favorites.add_favorite("u1", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N", generation_id="g1")
        favorites.add_favorite("u1", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N", generation_id="g2")
        favorites.add_favorite("u1", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N")
        with pytest.raises(ConflictError):
            favorites.add_favorite("u1", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N")

    def test_concurrent_adds_of_the_same_hook_store_one_row(self):
        def add_one(_):
            try:
                favorites.add_favorite("u1", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N", generation_id="g")
                return "added"
            except ConflictError:
                return "conflict"

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(add_one, range(8)))

        assert results.count("added") == 1
        assert results.count("conflict") == 7
        items, page = favorites.list_favorites("u1")
        assert page.total_items == 1

    def test_same_hook_for_another_user_is_fine(self):
        favorites.add_favorite("u1", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N", generation_id="g")
        favorites.add_favorite("u2", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N", generation_id="g")

    @pytest.mark.parametrize(
        "kwargs,field",
        [
            (dict(hook_snapshot=None, framework="F", platform_notes="N"), "hook_snapshot"),
            (dict(hook_snapshot={"score": 1}, framework="F", platform_notes="N"), "hook_snapshot.verbal_hook"),
            (dict(hook_snapshot=SNAPSHOT, framework=" ", platform_notes="N"), "framework"),
            (dict(hook_snapshot=SNAPSHOT, framework="F", platform_notes=None), "platform_notes"),
        ],
    )
    def test_required_fields(self, kwargs, field):
        with pytest.raises(ValidationError) as exc:
            favorites.add_favorite("u1", **kwargs)
        assert exc.value.field == field

    def test_remove_is_owner_scoped(self):
        favorite = favorites.add_favorite("u1", hook_snapshot=SNAPSHOT, framework="F", platform_notes="N")
        with pytest.raises(NotFoundError):
            favorites.remove_favorite("u2", favorite.id)
        favorites.remove_favorite("u1", favorite.id)
        with pytest.raises(NotFoundError):
            favorites.remove_favorite("u1", favorite.id)
