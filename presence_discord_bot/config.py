import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _optional_int(value):
    if value is None or not value.strip():
        return None
    return int(value)


# CONFIGURATION

class Config:

    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    GUILD_ID = _optional_int(os.getenv('GUILD_ID'))

    # Redis
    REDIS_HOST = os.getenv('REDIS_HOST', 'localhost')
    REDIS_PORT = int(os.getenv('REDIS_PORT', 6379))
    REDIS_PASSWORD = os.getenv('REDIS_PASSWORD', None)
    REDIS_DB = int(os.getenv('REDIS_DB', 0))
    REDIS_CONNECT_TIMEOUT = 5

    # Notification API
    API_URL = (os.getenv('DISCORD_BOT_API_URL') or '').rstrip('/') or None
    API_KEY = os.getenv('DISCORD_BOT_API_KEY', '')
    API_TIMEOUT = 10

    TIMEZONE = os.getenv('TIMEZONE', 'America/Sao_Paulo')
    EXPORT_DIR = Path(os.getenv('EXPORT_DIR', Path.cwd() / '.exports'))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    ITEMS_PER_PAGE = 10
    VIEW_TIMEOUT = 300
    TOP_ACTIVITIES = 5

    PERIOD_WINDOWS = {
        'day': timedelta(hours=24),
        'week': timedelta(days=7),
        'month': timedelta(days=30),
    }

    PERIOD_NAMES = {
        'day': 'Dia',
        'week': 'Semana',
        'month': 'Mês',
        'all': 'Todos',
    }

    DAY_NAMES = ['Domingo', 'Segunda', 'Terça',
                 'Quarta', 'Quinta', 'Sexta', 'Sábado']

    EMBED_COLOR = 0x5865F2
