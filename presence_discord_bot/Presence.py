import asyncio
import logging
import os

import aiohttp
import discord
from discord.ext import commands

from presence_discord_bot.config import Config
from presence_discord_bot.services.api_client import ApiClient
from presence_discord_bot.services.session_manager import SessionManager
from presence_discord_bot.services.storage import create_storage

# Intents
intents = discord.Intents.default()
intents.guilds = True
intents.members = True
intents.presences = True

bot = commands.Bot(command_prefix='!p', intents=intents)
bot.storage = None
bot.session_manager = None


@bot.event
async def on_ready():
    print(f'✅ Logged in as {bot.user} (ID: {bot.user.id})')
    print(f'  Guilds: {len(bot.guilds)}')
    print(f'  Watching for presence updates...')

    # Sync commands
    try:
        synced = await bot.tree.sync()
        print(f'🔄 Synced {len(synced)} commands globally')
        if Config.GUILD_ID:
            guild = discord.Object(id=Config.GUILD_ID)
            bot.tree.copy_global_to(guild=guild)
            synced = await bot.tree.sync(guild=guild)
            print(f'🔄 Synced {len(synced)} commands to guild ID: {Config.GUILD_ID}')
    except discord.HTTPException as e:
        print(f'❌ Failed to sync commands: {e}')


# sync up commands on rejoins/joins

@bot.event
async def on_guild_join(guild):
    try:
        synced = await bot.tree.sync(guild=guild)
        print(f"🏠 Synced {len(synced)} commands to new guild: {guild.name}")
    except discord.HTTPException as e:
        print(f"❌ Failed to sync to {guild.name}: {e}")


async def load_cogs():
    current_dir = os.path.dirname(os.path.abspath(__file__))
    cogs_path = os.path.join(current_dir, 'cogs')

    for filename in sorted(os.listdir(cogs_path)):
        if filename.endswith('.py') and filename != '__init__.py':
            try:
                await bot.load_extension(f'presence_discord_bot.cogs.{filename[:-3]}')
                print(f'✅ Loaded cog: {filename}')
            except commands.ExtensionError as e:
                print(f'❌ Failed to load cog {filename}: {e}')


async def main():
    discord.utils.setup_logging(level=getattr(logging, Config.LOG_LEVEL, logging.INFO))

    if not Config.DISCORD_TOKEN:
        raise SystemExit('❌ DISCORD_TOKEN is not set')

    bot.storage = await create_storage()
    print(f'✅ Storage ready ({bot.storage.name})')

    async with aiohttp.ClientSession() as http_session:
        api_client = ApiClient(Config.API_URL, Config.API_KEY, session=http_session)
        if not api_client.enabled:
            print('⚠️ DISCORD_BOT_API_URL not set - join/leave events will not be sent')

        bot.session_manager = SessionManager(bot.storage, api_client)

        try:
            async with bot:
                await load_cogs()
                await bot.start(Config.DISCORD_TOKEN)
        finally:
            await bot.storage.close()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print('👋 Shutting down')


if __name__ == "__main__":
    run()
