import asyncio
import logging
from datetime import datetime, timezone

import discord
from discord import app_commands
from discord.ext import commands

from presence_discord_bot.config import Config
from presence_discord_bot.services.charts import render_temporal_chart
from presence_discord_bot.services.export import export_retrospective, remove_exports
from presence_discord_bot.services.statistics import generate_retrospective, get_timezone

logger = logging.getLogger(__name__)

CHART_FILENAME = "tendencias.png"


def format_short_duration(milliseconds):
    hours = int(milliseconds // (1000 * 60 * 60))
    minutes = int((milliseconds % (1000 * 60 * 60)) // (1000 * 60))
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_hours(hours):
    h = int(hours)
    m = int((hours - h) * 60)
    return f"{h}h {m}m"


def build_retrospective_embed(data) -> discord.Embed:
    general = data.general
    generated_at = datetime.fromtimestamp(data.generated_at / 1000, tz=timezone.utc)
    local_time = generated_at.astimezone(get_timezone())

    embed = discord.Embed(
        title=f"📊 Retrospectiva - {Config.PERIOD_NAMES[data.period]}",
        color=Config.EMBED_COLOR,
        timestamp=generated_at
    )

    embed.add_field(
        name="📈 Estatísticas Gerais",
        value="\n".join([
            f"⏱️ Total: {format_hours(general.total_hours)}",
            f"📊 Sessões: {general.total_sessions}",
            f"🎮 Atividade mais popular: {general.most_popular_activity}",
            f"👤 Usuário mais ativo: {general.most_active_user}",
            f"🕐 Horário de pico: {general.peak_hour}h",
            f"📅 Dia mais ativo: {Config.DAY_NAMES[general.peak_day]}",
        ]),
        inline=False
    )

    top_users = data.users[:5]
    embed.add_field(
        name="👥 Top 5 Usuários",
        value="\n".join(
            f"{i}. **{u.username}** - {format_short_duration(u.total_duration)} ({u.total_sessions} sessões)"
            for i, u in enumerate(top_users, 1)
        ) or "N/A",
        inline=False
    )

    top_activities = data.activities[:5]
    embed.add_field(
        name="🎮 Top 5 Atividades",
        value="\n".join(
            f"{i}. **{a.activity_name}** - {format_short_duration(a.total_duration)} "
            f"({a.total_sessions} sessões, {a.unique_users} usuários)"
            for i, a in enumerate(top_activities, 1)
        ) or "N/A",
        inline=False
    )

    embed.set_footer(text=f"Gerado em {local_time.strftime('%d/%m/%Y %H:%M:%S')}")
    return embed


class Retrospective(commands.Cog):
    def __init__(self, bot):
        self.bot = bot
        self.sessions = bot.session_manager

    @app_commands.command(name="retrospectiva", description="Gera retrospectiva completa de atividades")
    @app_commands.describe(periodo="Período para análise", formato="Formato de exportação")
    @app_commands.choices(
        periodo=[
            app_commands.Choice(name="Dia", value="day"),
            app_commands.Choice(name="Semana", value="week"),
            app_commands.Choice(name="Mês", value="month"),
            app_commands.Choice(name="Todos", value="all")
        ],
        formato=[
            app_commands.Choice(name="JSON", value="json"),
            app_commands.Choice(name="CSV", value="csv"),
            app_commands.Choice(name="Ambos", value="both")
        ]
    )
    async def retrospective_command(self, interaction: discord.Interaction,
                                    periodo: app_commands.Choice[str] = None,
                                    formato: app_commands.Choice[str] = None):
        await interaction.response.defer()

        period = periodo.value if periodo else "month"
        fmt = formato.value if formato else "both"
        paths = []

        try:
            data = await generate_retrospective(self.sessions, period)

            if data.is_empty:
                await interaction.followup.send(
                    "❌ Nenhum dado encontrado para o período selecionado. Tente outro período.")
                return

            embed = build_retrospective_embed(data)

            paths = await asyncio.to_thread(export_retrospective, data, fmt)
            chart = await asyncio.to_thread(render_temporal_chart, data.temporal)

            files = [discord.File(path, filename=path.name) for path in paths]
            files.append(discord.File(chart, filename=CHART_FILENAME))
            embed.set_image(url=f"attachment://{CHART_FILENAME}")

            await interaction.followup.send(embed=embed, files=files)

        except Exception as e:
            logger.error(f"❌ Error generating retrospective: {e}", exc_info=True)
            await interaction.followup.send("❌ Ocorreu um erro ao gerar a retrospectiva. Tente novamente.")
        finally:
            # exports are only kept until attached
            await asyncio.to_thread(remove_exports, paths)


async def setup(bot):
    await bot.add_cog(Retrospective(bot))
