"""Unit tests for notification preferences, templates and delivery ids."""

from uuid import uuid4

from domain.entities.notification import (
    Channel,
    NotificationContent,
    NotificationKind,
    NotificationPreference,
    make_delivery_id,
)


class TestDeliveryId:
    def test_deterministic(self):
        event_id, user = uuid4(), uuid4()
        assert make_delivery_id(event_id, user, Channel.EMAIL) == make_delivery_id(
            event_id, user, "email"
        )

    def test_differs_per_channel_and_recipient(self):
        event_id, user = uuid4(), uuid4()
        ids = {
            make_delivery_id(event_id, user, Channel.EMAIL),
            make_delivery_id(event_id, user, Channel.PUSH),
            make_delivery_id(event_id, uuid4(), Channel.EMAIL),
        }
        assert len(ids) == 3


class TestPreferences:
    def test_defaults_enable_everything(self):
        pref = NotificationPreference(user_id=uuid4())
        assert pref.enabled_channels(NotificationKind.TASK_ASSIGNED) == set(Channel)

    def test_global_switch_wins(self):
        pref = NotificationPreference(
            user_id=uuid4(),
            email_enabled=False,
            overrides={NotificationKind.TASK_ASSIGNED.value: {"email": True}},
        )
        assert Channel.EMAIL not in pref.enabled_channels(NotificationKind.TASK_ASSIGNED)

    def test_override_disables_one_kind(self):
        pref = NotificationPreference(
            user_id=uuid4(),
            overrides={NotificationKind.TASK_COMMENTED.value: {"push": False}},
        )
        assert Channel.PUSH not in pref.enabled_channels(NotificationKind.TASK_COMMENTED)
        assert Channel.PUSH in pref.enabled_channels(NotificationKind.TASK_ASSIGNED)


class TestContent:
    def test_render_fills_template(self):
        content = NotificationContent.render(
            NotificationKind.TASK_ASSIGNED,
            {"task_ref": "ENG-1", "title": "Fix bug"},
            entity_type="task",
            entity_id=uuid4(),
            event_id=uuid4(),
        )
        assert content.title == "Task assigned: ENG-1"
        assert 'ENG-1 "Fix bug"' in content.body

    def test_missing_context_renders_blank(self):
        content = NotificationContent.render(
            NotificationKind.PROJECT_MEMBER_REMOVED,
            {},
            entity_type="project",
            entity_id=uuid4(),
            event_id=uuid4(),
        )
        assert content.title == "Removed from "
