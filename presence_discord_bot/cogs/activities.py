import logging
import time
from typing import Dict, List, Optional, Tuple

import discord
from discord import app_commands
from discord.ext import commands

from presence_discord_bot.config import Config
from presence_discord_bot.services.activity_query import (
    QUERY_PERIODS,
    ActivityGroup,
    format_activity_group,
    format_duration,
    get_activities_by_period,
)
from presence_discord_bot.services.session_manager import GROUP

logger = logging.getLogger(__name__)

PERIOD_OPTIONS = {
    'day': ("Últimas 24 horas", "Atividades do dia"),
    'week': ("Últimos 7 dias", "Atividades da semana"),
    'month': ("Últimos 30 dias", "Atividades do mês"),
}


# PAGINATION STATE

class ActivityPagination:
    def __init__(self, activities: List[ActivityGroup], period: str, user_id: int, page: int = 0):
        self.activities = activities
        self.period = period
        self.user_id = user_id
        self.page = page

    @property
    def total_pages(self) -> int:
        return max(1, -(-len(self.activities) // Config.ITEMS_PER_PAGE))

    def current_items(self) -> List[ActivityGroup]:
        start = self.page * Config.ITEMS_PER_PAGE
        return self.activities[start:start + Config.ITEMS_PER_PAGE]

    def set_activities(self, activities: List[ActivityGroup], period: str):
        self.activities = activities
        self.period = period
        self.page = 0

    def next_page(self) -> bool:
        if self.page < self.total_pages - 1:
            self.page += 1
            return True
        return False

    def previous_page(self) -> bool:
        if self.page > 0:
            self.page -= 1
            return True
        return False

    def create_embed(self) -> discord.Embed:
        items = self.current_items()
        total = len(self.activities)

        embed = discord.Embed(
            title=f"📊 Lista de Atividades - {Config.PERIOD_NAMES[self.period]}",
            color=Config.EMBED_COLOR,
            timestamp=discord.utils.utcnow()
        )
        embed.set_footer(
            text=f"Página {self.page + 1} de {self.total_pages} • Total: {total} atividades")

        if not items:
            embed.description = "Nenhuma atividade encontrada para este período."
            return embed

        offset = self.page * Config.ITEMS_PER_PAGE
        embed.description = "\n\n".join(
            f"**{offset + i}.** {format_activity_group(item)}"
            for i, item in enumerate(items, 1)
        )

        if self.total_pages > 1:
            embed.add_field(
                name="📈 Resumo",
                value=f"Mostrando atividades {offset + 1}-{offset + len(items)} de {total}",
                inline=False
            )

        return embed


# PAGINATION REGISTRY

class PaginationRegistry:
    """Open pagination views keyed by the user who opened them.

    Entries expire after ``ttl`` seconds; expired entries are dropped whenever
    the registry is read or written.
    """

    def __init__(self, ttl: float = Config.VIEW_TIMEOUT, clock=time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[int, Tuple[object, float]] = {}

    def __len__(self):
        self.evict_expired()
        return len(self._entries)

    def evict_expired(self) -> List[object]:
        now = self.clock()
        expired = [user_id for user_id, (_, expires_at) in self._entries.items()
                   if expires_at <= now]
        return [self._entries.pop(user_id)[0] for user_id in expired]

    def register(self, user_id: int, item) -> Optional[object]:
        """Store ``item`` for the user and return the entry it replaces, if any."""
        self.evict_expired()
        previous = self._entries.get(user_id)
        self._entries[user_id] = (item, self.clock() + self.ttl)
        return previous[0] if previous else None

    def touch(self, user_id: int, item) -> bool:
        """Restart the expiry of ``item`` if it is still the user's current entry."""
        self.evict_expired()
        entry = self._entries.get(user_id)
        if entry is None or entry[0] is not item:
            return False
        self._entries[user_id] = (item, self.clock() + self.ttl)
        return True

    def get(self, user_id: int):
        self.evict_expired()
        entry = self._entries.get(user_id)
        return entry[0] if entry else None

    def remove(self, user_id: int, item=None):
        entry = self._entries.get(user_id)
        if entry and (item is None or entry[0] is item):
            del self._entries[user_id]


# PAGINATION VIEW

class PeriodSelect(discord.ui.Select):
    def __init__(self, current_value: str):
        options = [
            discord.SelectOption(label=label, value=value, description=description,
                                 default=value == current_value)
            for value, (label, description) in PERIOD_OPTIONS.items()
        ]
        super().__init__(placeholder=f"Filtrar por: {Config.PERIOD_NAMES[current_value]}",
                         options=options, custom_id="activities_period_select")

    async def callback(self, interaction: discord.Interaction):
        view = self.view
        new_period = self.values[0]
        if new_period == view.pagination.period:
            await interaction.response.defer()
            return

        await interaction.response.defer()
        try:
            activities = await get_activities_by_period(view.cog.sessions, new_period)
        except Exception as e:
            logger.error(f"❌ Error updating period: {e}", exc_info=True)
            await interaction.followup.send("❌ Erro ao atualizar o filtro. Tente novamente.", ephemeral=True)
            return

        view.pagination.set_activities(activities, new_period)
        view.update_components()
        await interaction.edit_original_response(embed=view.pagination.create_embed(), view=view)


class PrevButton(discord.ui.Button):
    def __init__(self, disabled: bool):
        super().__init__(style=discord.ButtonStyle.primary, label="◀ Anterior",
                         custom_id="activities_prev", disabled=disabled)

    async def callback(self, interaction: discord.Interaction):
        view = self.view
        if view.pagination.previous_page():
            view.update_components()
            await interaction.response.edit_message(embed=view.pagination.create_embed(), view=view)
        else:
            await interaction.response.defer()


class NextButton(discord.ui.Button):
    def __init__(self, disabled: bool):
        super().__init__(style=discord.ButtonStyle.primary, label="Próximo ▶",
                         custom_id="activities_next", disabled=disabled)

    async def callback(self, interaction: discord.Interaction):
        view = self.view
        if view.pagination.next_page():
            view.update_components()
            await interaction.response.edit_message(embed=view.pagination.create_embed(), view=view)
        else:
            await interaction.response.defer()


class ActivityPaginationView(discord.ui.View):
    def __init__(self, cog, pagination: ActivityPagination):
        super().__init__(timeout=Config.VIEW_TIMEOUT)
        self.cog = cog
        self.pagination = pagination
        self.message: Optional[discord.Message] = None
        self.update_components()

    def update_components(self):
        self.clear_items()
        self.add_item(PrevButton(disabled=self.pagination.page == 0))
        self.add_item(NextButton(
            disabled=self.pagination.page >= self.pagination.total_pages - 1))
        self.add_item(PeriodSelect(self.pagination.period))

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.pagination.user_id:
            await interaction.response.send_message("Esta interação não é sua!", ephemeral=True)
            return False
        # keep the registry expiry in step with the view timeout
        self.cog.paginations.touch(self.pagination.user_id, self)
        return True

    async def disable(self):
        self.stop()
        for child in self.children:
            child.disabled = True
        if self.message is None:
            return
        try:
            await self.message.edit(view=self)
        except discord.HTTPException as e:
            # message might have been deleted
            logger.debug(f"Could not disable pagination components: {e}")

    async def on_timeout(self):
        self.cog.paginations.remove(self.pagination.user_id, self)
        await self.disable()


# ACTIVITY TRACKER

class ActivityTracker(commands.Cog):
    def __init__(self, bot):
        self.bot = bot
        self.sessions = bot.session_manager
        self.paginations = PaginationRegistry()

    # HELPER FUNCTIONS

    @staticmethod
    def get_activity_info(activity) -> Tuple[Optional[str], Optional[int]]:
        name = getattr(activity, 'name', None)
        if not name or not name.strip():
            return None, None

        activity_type = getattr(activity.type, 'value', activity.type)
        return name.strip(), int(activity_type)

    def get_activity_map(self, member) -> Dict[str, Tuple[str, int, object]]:
        activities = {}
        for activity in (member.activities if member else ()):
            name, activity_type = self.get_activity_info(activity)
            if name is None:
                continue
            activities[f"{activity_type}:{name}"] = (name, activity_type, activity)
        return activities

    @staticmethod
    def log_status_change(before, after):
        old_status = getattr(before, 'status', None) or discord.Status.offline
        if str(old_status) == str(after.status):
            return

        logger.info(f"[STATUS CHANGE] {after} ({after.id})")
        logger.info(f"  Old Status: {old_status}")
        logger.info(f"  New Status: {after.status}")
        logger.info(
            f"  Active on: desktop={getattr(after, 'desktop_status', None)}, "
            f"mobile={getattr(after, 'mobile_status', None)}, "
            f"web={getattr(after, 'web_status', None)}"
        )

    async def log_ended_session(self, member, name, activity_type, result):
        logger.info(
            f"[SESSION COMPLETED - {result.session_type.upper()}] {member} ({member.id}) "
            f"{name} (type {activity_type}) after {format_duration(result.duration)}"
        )

        if result.session_type != GROUP:
            logger.info("  🏃 SOLO SESSION COMPLETED")
        elif result.remaining_users:
            users = await self.sessions.get_group_session_users(name, activity_type)
            logger.info(f"  Still active: {', '.join(u.username for u in users)}")
        else:
            logger.info("  🏁 GROUP SESSION ENDED - All users have left")

    async def log_started_session(self, member, name, activity_type, result, activity=None):
        logger.info(f"[ACTIVITY STARTED] {member} ({member.id}) {name} (type {activity_type})")

        details = getattr(activity, 'details', None)
        if details:
            logger.info(f"  Details: {details}")
        state = getattr(activity, 'state', None)
        if state:
            logger.info(f"  State: {state}")

        if result.session_type != GROUP:
            logger.info("  Session type: Solo")
            return

        logger.info("  🎮 Joined existing group session!" if result.was_already_group
                    else "  🎮 Group session created!")
        users = await self.sessions.get_group_session_users(name, activity_type)
        others = [u.username for u in users if u.user_id != str(member.id)]
        if others:
            logger.info(f"  Playing with: {', '.join(others)}")

    # ACTIVITY LISTENING

    @commands.Cog.listener()
    async def on_presence_update(self, before, after):

        if after.bot:
            return

        self.log_status_change(before, after)

        user_id = str(after.id)
        previous = self.get_activity_map(before)
        current = self.get_activity_map(after)

        try:
            for key in previous.keys() - current.keys():
                name, activity_type, _ = previous[key]
                result = await self.sessions.end_user_activity(user_id, name, activity_type)
                if result:
                    await self.log_ended_session(after, name, activity_type, result)

            for key in current.keys() - previous.keys():
                name, activity_type, activity = current[key]
                result = await self.sessions.start_user_activity(
                    user_id, str(after), after.display_avatar.url, name, activity_type)
                await self.log_started_session(after, name, activity_type, result, activity)
        except Exception as e:
            logger.error(f"❌ Error tracking presence for {after} ({user_id}): {e}", exc_info=True)

    @commands.Cog.listener()
    async def on_member_remove(self, member):
        if member.bot:
            return
        try:
            results = await self.sessions.end_all_user_sessions(str(member.id))
            if results:
                logger.info(f"Ended {len(results)} session(s) for departed member {member}")
        except Exception as e:
            logger.error(f"❌ Error ending sessions for {member}: {e}", exc_info=True)

    # COMMANDS

    @app_commands.command(name="atividades", description="Exibe lista de atividades com filtros e paginação")
    @app_commands.describe(filtro="Filtrar por período")
    @app_commands.choices(filtro=[
        app_commands.Choice(name="Dia", value="day"),
        app_commands.Choice(name="Semana", value="week"),
        app_commands.Choice(name="Mês", value="month")
    ])
    async def activities_command(self, interaction: discord.Interaction,
                                 filtro: app_commands.Choice[str] = None):
        await interaction.response.defer()

        period = filtro.value if filtro else QUERY_PERIODS[0]

        try:
            activities = await get_activities_by_period(self.sessions, period)
        except Exception as e:
            logger.error(f"❌ Error executing atividades command: {e}", exc_info=True)
            await interaction.followup.send("❌ Ocorreu um erro ao buscar as atividades. Tente novamente.")
            return

        pagination = ActivityPagination(activities, period, interaction.user.id)
        view = ActivityPaginationView(self, pagination)

        previous = self.paginations.register(interaction.user.id, view)
        if previous is not None:
            await previous.disable()

        view.message = await interaction.followup.send(
            embed=pagination.create_embed(), view=view, wait=True)


async def setup(bot):
    await bot.add_cog(ActivityTracker(bot))
