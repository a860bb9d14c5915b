"""Tests for the activities cog - presence diffing, pagination state and registry."""

import logging
from types import SimpleNamespace

import discord
import pytest
from conftest import HOUR, FakeInteraction

from presence_discord_bot.cogs.activities import (
    ActivityPagination,
    ActivityPaginationView,
    ActivityTracker,
    PaginationRegistry,
)
from presence_discord_bot.services.activity_query import ActivityGroup
from presence_discord_bot.services.session_manager import GROUP


class FakeMember:
    def __init__(self, member_id, name, activities=(), bot=False, status=discord.Status.online):
        self.id = member_id
        self.name = name
        self.bot = bot
        self.activities = tuple(activities)
        self.status = status
        self.desktop_status = status
        self.mobile_status = discord.Status.offline
        self.web_status = discord.Status.offline
        self.display_avatar = SimpleNamespace(url=f"https://cdn/{member_id}.png")

    def __str__(self):
        return self.name

    def with_activities(self, *activities):
        return FakeMember(self.id, self.name, activities, self.bot, self.status)

    def with_status(self, status):
        return FakeMember(self.id, self.name, self.activities, self.bot, status)


def playing(name, details=None, state=None):
    return SimpleNamespace(name=name, type=discord.ActivityType.playing, details=details, state=state)


@pytest.fixture
def cog(manager):
    return ActivityTracker(SimpleNamespace(session_manager=manager))


# ---------------------------------------------------------------------------
# Presence listener
# ---------------------------------------------------------------------------

class TestPresenceUpdate:
    async def test_new_activity_starts_session(self, cog, manager):
        member = FakeMember(1, "ana")
        await cog.on_presence_update(member, member.with_activities(playing("Chess")))

        [session] = await manager.get_user_active_sessions("1")
        assert session.activity_name == "Chess"
        assert session.activity_type == 0
        assert session.username == "ana"
        assert session.avatar_url == "https://cdn/1.png"

    async def test_vanished_activity_ends_session(self, cog, manager, clock):
        member = FakeMember(1, "ana")
        before = member.with_activities(playing("Chess"))
        await cog.on_presence_update(member, before)
        clock.advance(HOUR)

        await cog.on_presence_update(before, member)

        assert await manager.get_user_active_sessions("1") == []
        [entry] = await manager.get_history()
        assert entry.duration == HOUR

    async def test_switching_activities(self, cog, manager):
        member = FakeMember(1, "ana")
        chess = member.with_activities(playing("Chess"))
        await cog.on_presence_update(member, chess)
        await cog.on_presence_update(chess, member.with_activities(playing("Minecraft")))

        [session] = await manager.get_user_active_sessions("1")
        assert session.activity_name == "Minecraft"
        assert len(await manager.get_history()) == 1

    async def test_unchanged_activity_is_left_alone(self, cog, manager):
        member = FakeMember(1, "ana")
        chess = member.with_activities(playing("Chess"))
        await cog.on_presence_update(member, chess)
        await cog.on_presence_update(chess, chess)

        assert len(await manager.get_user_active_sessions("1")) == 1
        assert await manager.get_history() == []

    async def test_group_forms_across_members(self, cog, manager):
        ana, bia = FakeMember(1, "ana"), FakeMember(2, "bia")
        await cog.on_presence_update(ana, ana.with_activities(playing("Chess")))
        await cog.on_presence_update(bia, bia.with_activities(playing("Chess")))

        users = await manager.get_group_session_users("Chess", 0)
        assert [u.username for u in users] == ["ana", "bia"]

        result = await manager.end_user_activity("1", "Chess", 0)
        assert result.session_type == GROUP

    async def test_bots_and_nameless_activities_ignored(self, cog, manager):
        robot = FakeMember(9, "robot", bot=True)
        await cog.on_presence_update(robot, robot.with_activities(playing("Chess")))
        assert await manager.get_all_active_sessions() == []

        member = FakeMember(1, "ana")
        await cog.on_presence_update(member, member.with_activities(playing("  ")))
        assert await manager.get_all_active_sessions() == []

    async def test_storage_errors_are_contained(self, cog, manager, monkeypatch):
        async def broken(*args, **kwargs):
            raise ConnectionError("redis went away")

        monkeypatch.setattr(manager.storage, "get_item", broken)
        member = FakeMember(1, "ana")
        await cog.on_presence_update(member, member.with_activities(playing("Chess")))

    async def test_member_remove_ends_everything(self, cog, manager):
        member = FakeMember(1, "ana")
        await cog.on_presence_update(member, member.with_activities(playing("Chess"), playing("Minecraft")))

        await cog.on_member_remove(member)

        assert await manager.get_user_active_sessions("1") == []
        assert len(await manager.get_history()) == 2


class TestPresenceLogging:
    @pytest.fixture(autouse=True)
    def info_logs(self, caplog):
        caplog.set_level(logging.INFO, logger="presence_discord_bot.cogs.activities")
        return caplog

    async def test_status_change_is_logged(self, cog, caplog):
        member = FakeMember(1, "ana", status=discord.Status.offline)
        await cog.on_presence_update(member, member.with_status(discord.Status.dnd))

        assert "[STATUS CHANGE] ana (1)" in caplog.text
        assert "Old Status: offline" in caplog.text
        assert "New Status: dnd" in caplog.text
        assert "Active on: desktop=dnd, mobile=offline, web=offline" in caplog.text

    async def test_same_status_not_logged(self, cog, caplog):
        member = FakeMember(1, "ana")
        await cog.on_presence_update(member, member.with_activities(playing("Chess")))

        assert "STATUS CHANGE" not in caplog.text

    async def test_details_and_state_logged_on_start(self, cog, caplog):
        member = FakeMember(1, "ana")
        activity = playing("Chess", details="Ranked", state="Move 12")
        await cog.on_presence_update(member, member.with_activities(activity))

        assert "Details: Ranked" in caplog.text
        assert "State: Move 12" in caplog.text


# ---------------------------------------------------------------------------
# Pagination state
# ---------------------------------------------------------------------------

def groups(count):
    return [ActivityGroup(f"Game {i}", 0, total_duration=HOUR, total_sessions=1) for i in range(count)]


class TestActivityPagination:
    def test_pages_of_ten(self):
        pagination = ActivityPagination(groups(23), "day", 1)

        assert pagination.total_pages == 3
        assert [g.activity_name for g in pagination.current_items()][0] == "Game 0"
        assert pagination.next_page() and pagination.next_page()
        assert len(pagination.current_items()) == 3
        assert pagination.next_page() is False
        assert pagination.page == 2

    def test_previous_stops_at_first_page(self):
        pagination = ActivityPagination(groups(5), "day", 1)
        assert pagination.total_pages == 1
        assert pagination.previous_page() is False

    def test_period_change_resets_page(self):
        pagination = ActivityPagination(groups(15), "day", 1)
        pagination.next_page()
        pagination.set_activities(groups(2), "week")
        assert pagination.page == 0
        assert pagination.period == "week"

    def test_embed_contents(self):
        pagination = ActivityPagination(groups(12), "week", 1)
        pagination.next_page()
        embed = pagination.create_embed()

        assert embed.title == "📊 Lista de Atividades - Semana"
        assert embed.footer.text == "Página 2 de 2 • Total: 12 atividades"
        assert embed.description.startswith("**11.** **Game 10**")
        assert embed.fields[0].value == "Mostrando atividades 11-12 de 12"

    def test_empty_embed(self):
        embed = ActivityPagination([], "month", 1).create_embed()
        assert embed.description == "Nenhuma atividade encontrada para este período."
        assert embed.footer.text == "Página 1 de 1 • Total: 0 atividades"


# ---------------------------------------------------------------------------
# Pagination registry
# ---------------------------------------------------------------------------

class TestPaginationRegistry:
    def test_register_replaces_previous(self):
        registry = PaginationRegistry(ttl=10, clock=lambda: 0)
        first, second = object(), object()

        assert registry.register(1, first) is None
        assert registry.register(1, second) is first
        assert registry.get(1) is second

    def test_entries_expire(self):
        now = [0]
        registry = PaginationRegistry(ttl=300, clock=lambda: now[0])
        registry.register(1, "view")

        now[0] = 299
        assert registry.get(1) == "view"
        now[0] = 300
        assert registry.get(1) is None
        assert len(registry) == 0

    def test_remove_only_matching_item(self):
        registry = PaginationRegistry(ttl=10, clock=lambda: 0)
        old, new = object(), object()
        registry.register(1, new)

        registry.remove(1, old)
        assert registry.get(1) is new
        registry.remove(1, new)
        assert registry.get(1) is None

    def test_touch_restarts_expiry(self):
        now = [0]
        registry = PaginationRegistry(ttl=300, clock=lambda: now[0])
        view = object()
        registry.register(1, view)

        now[0] = 250
        assert registry.touch(1, view) is True
        now[0] = 500
        assert registry.get(1) is view
        now[0] = 550
        assert registry.get(1) is None

    def test_touch_ignores_replaced_item(self):
        registry = PaginationRegistry(ttl=10, clock=lambda: 0)
        old, new = object(), object()
        registry.register(1, new)
        assert registry.touch(1, old) is False
        assert registry.get(1) is new


# ---------------------------------------------------------------------------
# Pagination view
# ---------------------------------------------------------------------------

class FakeMessage:
    def __init__(self):
        self.edits = []

    async def edit(self, **kwargs):
        self.edits.append(kwargs)


class TestActivityPaginationView:
    async def test_owner_passes_check(self, cog):
        view = ActivityPaginationView(cog, ActivityPagination(groups(3), "day", 1))
        cog.paginations.register(1, view)
        interaction = FakeInteraction(user_id=1)

        assert await view.interaction_check(interaction) is True
        assert interaction.response.sent == []

    async def test_other_users_rejected(self, cog):
        view = ActivityPaginationView(cog, ActivityPagination(groups(3), "day", 1))
        interaction = FakeInteraction(user_id=2)

        assert await view.interaction_check(interaction) is False
        assert interaction.response.sent == [("Esta interação não é sua!", {"ephemeral": True})]

    async def test_buttons_follow_page(self, cog):
        pagination = ActivityPagination(groups(15), "day", 1)
        view = ActivityPaginationView(cog, pagination)
        prev_button, next_button, select = view.children
        assert prev_button.disabled and not next_button.disabled

        pagination.next_page()
        view.update_components()
        prev_button, next_button, select = view.children
        assert not prev_button.disabled and next_button.disabled

    async def test_timeout_disables_and_unregisters(self, cog):
        view = ActivityPaginationView(cog, ActivityPagination(groups(3), "day", 1))
        view.message = FakeMessage()
        cog.paginations.register(1, view)

        await view.on_timeout()

        assert cog.paginations.get(1) is None
        assert all(child.disabled for child in view.children)
        assert view.message.edits == [{"view": view}]
        assert view.is_finished()
