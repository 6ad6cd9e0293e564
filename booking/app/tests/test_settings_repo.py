from booking import config
from booking.app.services.confirmation import DEFAULT_CANCELLATION_TEMPLATE
from booking.app.services.schedule_rules import resolve_schedule
from booking.app.services.settings_repo import (
    BOOKING_TEMPLATE_KEY,
    SCHEDULING_KEY,
    SettingsRepo,
)


def test_rule_set_from_stored_documents(run_with_db):
    async def scenario():
        repo = SettingsRepo()
        await repo.update_setting(
            SCHEDULING_KEY,
            {"numberOfStaff": 2, "workingHours": ["09:00", "10:00"], "weeklyOffDays": [0]},
        )
        await repo.upsert_service("cut", "Haircut")
        await repo.upsert_service("color", "Coloring", {"serviceDurationMinutes": 120, "numberOfStaff": 1})
        return await repo.load_rule_set()

    rules = run_with_db(scenario)
    assert rules.has_service("cut") and rules.has_service("color")
    assert rules.service_name("color") == "Coloring"
    assert rules.global_settings.number_of_staff == 2
    schedule = resolve_schedule("2026-10-20", rules.global_settings, rules.rules_for("color"))
    assert schedule.service_duration_minutes == 120
    assert schedule.number_of_staff == 1
    assert schedule.working_hours == ("09:00", "10:00")


def test_rule_set_falls_back_to_config(run_with_db, monkeypatch):
    monkeypatch.setitem(config.SETTINGS, "working_hours", ["08:00"])
    monkeypatch.setitem(config.SETTINGS, "number_of_staff", 4)

    async def scenario():
        return await SettingsRepo().load_rule_set()

    rules = run_with_db(scenario)
    assert rules.global_settings.working_hours == ("08:00",)
    assert rules.global_settings.number_of_staff == 4
    assert dict(rules.services) == {}


def test_templates_and_cache_invalidation(run_with_db):
    async def scenario():
        repo = SettingsRepo()
        before = await repo.load_templates()
        await repo.update_setting(BOOKING_TEMPLATE_KEY, "Done: {{service}}")
        after = await repo.load_templates()
        return before, after, await repo.get_setting("missing", "dflt")

    before, after, missing = run_with_db(scenario)
    assert after.booking == "Done: {{service}}"
    assert before.booking != after.booking
    assert after.cancellation == DEFAULT_CANCELLATION_TEMPLATE
    assert missing == "dflt"
