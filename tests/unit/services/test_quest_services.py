"""
Service Tests for Quests
========================

Test Coverage
-------------
- Template creation and validation
- Lazy creation of today's core quests
- Bonus quest activation rules
- Progress evaluation: full, partial, not met, already completed
- Batch evaluation
- Reset and removal
- Concurrent submissions for one user
"""

import asyncio

import pytest

from arise.database.models.enums import QuestStatus
from arise.modules.shared.exceptions import (
    InvalidOperationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tests.conftest import PROTEIN_150, STEPS_10K, WORKOUT_DONE


async def only_quest(services, user_id):
    quests = await services.quest_catalog.get_today_quests(user_id)
    assert len(quests) == 1
    return quests[0]


@pytest.mark.service
@pytest.mark.asyncio
class TestQuestCatalog:
    """Templates and today's board."""

    async def test_create_template_normalizes(self, services):
        template = await services.quest_catalog.create_template(
            name="  Walk  ",
            category="movement",
            requirement=STEPS_10K,
            base_xp=100,
            is_core=True,
        )

        assert template.id is not None
        assert template.name == "Walk"
        assert template.category.value == "MOVEMENT"
        assert template.min_partial_percent == 50
        assert template.requirement == STEPS_10K

    async def test_malformed_requirement_rejected(self, services):
        with pytest.raises(ValidationError) as exc_info:
            await services.quest_catalog.create_template(
                name="Broken",
                category="MOVEMENT",
                requirement={"type": "numeric", "metric": "steps", "operator": "about", "value": 1},
                base_xp=10,
            )

        assert exc_info.value.field == "requirement.operator"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"base_xp": 0},
            {"category": "SLEEPING"},
            {"quest_type": "MONTHLY"},
            {"min_partial_percent": 0},
            {"min_partial_percent": 101},
            {"name": ""},
        ],
    )
    async def test_invalid_fields_rejected(self, services, overrides):
        kwargs = {"name": "Walk", "category": "MOVEMENT", "requirement": STEPS_10K, "base_xp": 10}
        kwargs.update(overrides)

        with pytest.raises(ValidationError):
            await services.quest_catalog.create_template(**kwargs)

    async def test_user_owned_core_rejected(self, services):
        with pytest.raises(ValidationError):
            await services.quest_catalog.create_template(
                name="Mine",
                category="DISCIPLINE",
                requirement=WORKOUT_DONE,
                base_xp=10,
                is_core=True,
                owner_user_id="user-1",
            )

    async def test_list_templates_hides_foreign_custom(self, services, make_template, make_user):
        await make_user("user-1")
        await make_user("user-2")
        await make_template(name="Shared")
        await make_template(name="Mine", is_core=False, owner_user_id="user-1")
        await make_template(name="Theirs", is_core=False, owner_user_id="user-2")

        names = [t["name"] for t in await services.quest_catalog.list_templates("user-1")]

        assert names == ["Shared", "Mine"]
        assert [t["name"] for t in await services.quest_catalog.list_templates()] == ["Shared"]

    async def test_today_quests_created_once(self, services, make_user, make_template):
        # Arrange
        user_id = await make_user()
        await make_template(name="Steps")
        await make_template(name="Workout", requirement=WORKOUT_DONE)
        await make_template(name="Optional", is_core=False)

        # Act
        first = await services.quest_catalog.get_today_quests(user_id)
        second = await services.quest_catalog.get_today_quests(user_id)

        # Assert
        assert [q["name"] for q in first] == ["Steps", "Workout"]
        assert [q["id"] for q in second] == [q["id"] for q in first]
        assert first[0]["target_value"] == 10000
        assert first[1]["target_value"] == 1
        assert all(q["status"] == "ACTIVE" for q in first)

        daily = await services.daily_log.get_daily_log(user_id)
        assert daily["core_quests_total"] == 2

    async def test_today_quests_unknown_user(self, services):
        with pytest.raises(NotFoundError):
            await services.quest_catalog.get_today_quests("ghost")


@pytest.mark.service
@pytest.mark.asyncio
class TestActivateBonusQuest:
    """Opting into non-core quests."""

    async def test_activate(self, services, make_user, make_template, recorder):
        recorder.watch("quest.activated")
        user_id = await make_user()
        template = await make_template(name="Protein", requirement=PROTEIN_150, is_core=False)

        quest = await services.quest_catalog.activate_bonus_quest(user_id, template.id)

        assert quest["name"] == "Protein"
        assert quest["is_core"] is False
        assert recorder.named("quest.activated")[0]["quest_log_id"] == quest["id"]

    async def test_activate_twice_rejected(self, services, make_user, make_template):
        user_id = await make_user()
        template = await make_template(is_core=False)
        await services.quest_catalog.activate_bonus_quest(user_id, template.id)

        with pytest.raises(InvalidOperationError):
            await services.quest_catalog.activate_bonus_quest(user_id, template.id)

    async def test_core_rejected(self, services, make_user, make_template):
        user_id = await make_user()
        template = await make_template(is_core=True)

        with pytest.raises(InvalidOperationError):
            await services.quest_catalog.activate_bonus_quest(user_id, template.id)

    async def test_weekly_rejected(self, services, make_user, make_template):
        user_id = await make_user()
        template = await make_template(is_core=False, quest_type="WEEKLY")

        with pytest.raises(InvalidOperationError):
            await services.quest_catalog.activate_bonus_quest(user_id, template.id)

    async def test_foreign_or_unknown_template(self, services, make_user, make_template):
        user_id = await make_user()
        await make_user("someone-else")
        foreign = await make_template(is_core=False, owner_user_id="someone-else")

        with pytest.raises(NotFoundError):
            await services.quest_catalog.activate_bonus_quest(user_id, foreign.id)
        with pytest.raises(NotFoundError):
            await services.quest_catalog.activate_bonus_quest(user_id, 9999)


@pytest.mark.service
@pytest.mark.asyncio
class TestUpdateQuestProgress:
    """Evaluating one quest."""

    async def test_full_completion(self, services, make_user, make_template, recorder):
        # Arrange
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)

        # Act
        result = await services.quest_progress.update_quest_progress(
            quest["id"], user_id, {"steps": 12000}
        )

        # Assert
        assert result.completed is True
        assert result.xp_awarded == 100
        assert result.leveled_up is True
        assert result.new_level == 2
        assert result.quest.current_value == 12000
        assert result.quest.completion_percent == 100
        assert result.quest.xp_awarded == 100

        daily = await services.daily_log.get_daily_log(user_id)
        assert daily["core_quests_completed"] == 1
        assert daily["is_perfect_day"] is True
        assert daily["xp_earned"] == 100

        progression = await services.player_progression.get_progression(user_id)
        assert progression["current_streak"] == 1
        assert recorder.named("quest.completed")[0]["partial"] is False

        timeline = await services.xp.get_xp_timeline(user_id)
        assert timeline[0]["description"] == "Completed quest: Daily Steps"
        assert timeline[0]["source_id"] == str(quest["id"])

    async def test_partial_completion(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template(allow_partial=True, min_partial_percent=50)
        quest = await only_quest(services, user_id)

        result = await services.quest_progress.update_quest_progress(
            quest["id"], user_id, {"steps": 7500}
        )

        assert result.completed is True
        assert result.xp_awarded == 75
        assert result.quest.completion_percent == 75
        timeline = await services.xp.get_xp_timeline(user_id)
        assert timeline[0]["description"] == "Partially completed quest: Daily Steps (75%)"

    async def test_below_partial_threshold_stays_active(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template(allow_partial=True, min_partial_percent=50)
        quest = await only_quest(services, user_id)

        result = await services.quest_progress.update_quest_progress(
            quest["id"], user_id, {"steps": 3000}
        )

        assert result.completed is False
        assert result.xp_awarded == 0
        assert result.quest.status is QuestStatus.ACTIVE
        assert result.quest.current_value == 3000
        assert result.quest.completion_percent == 30
        assert await services.xp.get_xp_timeline(user_id) == []

    async def test_partial_not_allowed(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)

        result = await services.quest_progress.update_quest_progress(
            quest["id"], user_id, {"steps": 9999}
        )

        assert result.completed is False

    async def test_completed_quest_rejects_update(self, services, make_user, make_template):
        # Arrange
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)
        await services.quest_progress.update_quest_progress(quest["id"], user_id, {"steps": 10000})

        # Act & Assert
        with pytest.raises(InvalidStateError) as exc_info:
            await services.quest_progress.update_quest_progress(
                quest["id"], user_id, {"steps": 20000}
            )

        assert exc_info.value.current_state == "COMPLETED"
        assert len(await services.xp.get_xp_timeline(user_id)) == 1

    async def test_other_users_quest_not_found(self, services, make_user, make_template):
        owner = await make_user("owner")
        await make_user("intruder")
        await make_template()
        quest = await only_quest(services, owner)

        with pytest.raises(NotFoundError):
            await services.quest_progress.update_quest_progress(
                quest["id"], "intruder", {"steps": 10000}
            )

    async def test_unknown_user_quest_not_found(self, services, make_user, make_template):
        owner = await make_user("owner")
        await make_template()
        quest = await only_quest(services, owner)

        with pytest.raises(NotFoundError):
            await services.quest_progress.update_quest_progress(
                quest["id"], "ghost", {"steps": 10000}
            )

    async def test_bad_metric_data(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)

        with pytest.raises(ValidationError):
            await services.quest_progress.update_quest_progress(
                quest["id"], user_id, {"steps": "many"}
            )

    async def test_metric_beyond_float_range_rejected(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)

        with pytest.raises(ValidationError) as exc_info:
            await services.quest_progress.update_quest_progress(
                quest["id"], user_id, {"steps": 10**400}
            )

        assert exc_info.value.field == "data.steps"
        assert len(await services.xp.get_xp_timeline(user_id)) == 0

    async def test_debuffed_completion_records_credited_xp(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)
        await services.debuff.apply_debuff(user_id)

        result = await services.quest_progress.update_quest_progress(
            quest["id"], user_id, {"steps": 10000}
        )

        assert result.xp_awarded == 90
        assert result.quest.xp_awarded == 90

    async def test_bonus_completion_does_not_count_as_core(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template(name="Steps")
        bonus = await make_template(name="Protein", requirement=PROTEIN_150, is_core=False)
        await services.quest_catalog.get_today_quests(user_id)
        quest = await services.quest_catalog.activate_bonus_quest(user_id, bonus.id)

        await services.quest_progress.update_quest_progress(quest["id"], user_id, {"protein": 160})

        daily = await services.daily_log.get_daily_log(user_id)
        assert daily["bonus_quests_completed"] == 1
        assert daily["core_quests_completed"] == 0
        assert daily["is_perfect_day"] is False


@pytest.mark.service
@pytest.mark.asyncio
class TestEvaluateActiveQuests:
    async def test_only_quests_covered_by_data(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template(name="Steps")
        await make_template(name="Workout", requirement=WORKOUT_DONE)
        await services.quest_catalog.get_today_quests(user_id)

        summary = await services.quest_progress.evaluate_active_quests(user_id, {"steps": 12000})

        assert summary.evaluated == 1
        assert summary.completed == 1
        assert summary.results[0].quest.template.name == "Steps"

    async def test_completed_quests_skipped(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template()
        await services.quest_catalog.get_today_quests(user_id)
        await services.quest_progress.evaluate_active_quests(user_id, {"steps": 12000})

        summary = await services.quest_progress.evaluate_active_quests(user_id, {"steps": 15000})

        assert summary.evaluated == 0


@pytest.mark.service
@pytest.mark.asyncio
class TestQuestLifecycle:
    """Reset and removal."""

    async def test_reset_reverses_completion(self, services, make_user, make_template, recorder):
        # Arrange
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)
        await services.quest_progress.update_quest_progress(quest["id"], user_id, {"steps": 10000})

        # Act
        result = await services.quest_lifecycle.reset_quest(quest["id"], user_id)

        # Assert
        assert result.xp_removed == 100
        assert result.new_level == 1
        assert result.quest.status is QuestStatus.ACTIVE
        assert result.quest.xp_awarded is None
        assert result.quest.completed_at is None

        progression = await services.player_progression.get_progression(user_id)
        assert progression["total_xp"] == 0
        assert progression["current_streak"] == 0

        daily = await services.daily_log.get_daily_log(user_id)
        assert daily["core_quests_completed"] == 0
        assert daily["xp_earned"] == 0
        assert daily["is_perfect_day"] is False

        timeline = await services.xp.get_xp_timeline(user_id)
        assert [e["final_amount"] for e in timeline] == [-100, 100]
        assert timeline[0]["source"] == "MANUAL_ADJUSTMENT"
        assert timeline[0]["description"] == "Quest reset: Daily Steps"
        assert recorder.named("quest.reset")[0]["xp_removed"] == 100
        assert (await services.xp.verify_user_chain(user_id)).valid is True

    async def test_reset_then_complete_again(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)
        await services.quest_progress.update_quest_progress(quest["id"], user_id, {"steps": 10000})
        await services.quest_lifecycle.reset_quest(quest["id"], user_id)

        result = await services.quest_progress.update_quest_progress(
            quest["id"], user_id, {"steps": 10000}
        )

        assert result.completed is True
        progression = await services.player_progression.get_progression(user_id)
        assert progression["total_xp"] == 100

    async def test_reset_active_quest_rejected(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)

        with pytest.raises(InvalidStateError):
            await services.quest_lifecycle.reset_quest(quest["id"], user_id)

    async def test_remove_bonus_quest(self, services, make_user, make_template, recorder):
        user_id = await make_user()
        template = await make_template(name="Protein", requirement=PROTEIN_150, is_core=False)
        quest = await services.quest_catalog.activate_bonus_quest(user_id, template.id)

        result = await services.quest_lifecycle.remove_quest(quest["id"], user_id)

        assert result == {"removed": True, "message": "Quest removed: Protein"}
        assert recorder.named("quest.removed")[0]["quest_log_id"] == quest["id"]
        assert await services.quest_catalog.get_today_quests(user_id) == []

    async def test_remove_core_quest_rejected(self, services, make_user, make_template):
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)

        with pytest.raises(InvalidOperationError, match="Core quests cannot be removed"):
            await services.quest_lifecycle.remove_quest(quest["id"], user_id)

    async def test_remove_completed_bonus_rejected(self, services, make_user, make_template):
        user_id = await make_user()
        template = await make_template(name="Protein", requirement=PROTEIN_150, is_core=False)
        quest = await services.quest_catalog.activate_bonus_quest(user_id, template.id)
        await services.quest_progress.update_quest_progress(quest["id"], user_id, {"protein": 150})

        with pytest.raises(InvalidOperationError, match="Reset it first"):
            await services.quest_lifecycle.remove_quest(quest["id"], user_id)


@pytest.mark.service
@pytest.mark.asyncio
class TestConcurrentProgress:
    """Submissions that overlap for the same user."""

    async def test_two_quests_complete_together(self, services, make_user, make_template):
        # Arrange
        user_id = await make_user()
        await make_template(name="Steps")
        await make_template(name="Workout", requirement=WORKOUT_DONE)
        steps, workout = await services.quest_catalog.get_today_quests(user_id)

        # Act
        results = await asyncio.gather(
            services.quest_progress.update_quest_progress(steps["id"], user_id, {"steps": 10000}),
            services.quest_progress.update_quest_progress(
                workout["id"], user_id, {"workout_done": True}
            ),
        )

        # Assert
        assert all(result.completed for result in results)
        daily = await services.daily_log.get_daily_log(user_id)
        assert daily["core_quests_completed"] == 2
        assert daily["xp_earned"] == 200
        assert daily["is_perfect_day"] is True
        assert (await services.player_progression.get_progression(user_id))["total_xp"] == 200
        assert (await services.xp.verify_user_chain(user_id)).checked == 2

    async def test_same_quest_submitted_twice_awards_once(
        self, services, make_user, make_template
    ):
        user_id = await make_user()
        await make_template()
        quest = await only_quest(services, user_id)

        outcomes = await asyncio.gather(
            services.quest_progress.update_quest_progress(quest["id"], user_id, {"steps": 10000}),
            services.quest_progress.update_quest_progress(quest["id"], user_id, {"steps": 12000}),
            return_exceptions=True,
        )

        completed = [o for o in outcomes if not isinstance(o, BaseException)]
        rejected = [o for o in outcomes if isinstance(o, InvalidStateError)]
        assert len(completed) == 1
        assert len(rejected) == 1
        assert len(await services.xp.get_xp_timeline(user_id)) == 1
