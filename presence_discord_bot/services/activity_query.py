from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from presence_discord_bot.services.session_manager import ActivityHistory, UserSession

QUERY_PERIODS = ("day", "week", "month")

ACTIVITY_TYPE_NAMES = {
    0: "Jogando",
    1: "Transmitindo",
    2: "Ouvindo",
    3: "Assistindo",
    4: "Personalizado",
    5: "Competindo",
}


@dataclass
class ActivityGroup:
    activity_name: str
    activity_type: int
    total_duration: int = 0
    total_sessions: int = 0
    active_users: List[str] = field(default_factory=list)
    history_sessions: List[ActivityHistory] = field(default_factory=list)
    active_sessions: List[UserSession] = field(default_factory=list)


# FORMATS

def format_duration(milliseconds):
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h {minutes % 60}m"
    elif hours > 0:
        return f"{hours}h {minutes % 60}m"
    elif minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    else:
        return f"{seconds}s"


def get_activity_type_name(activity_type: int) -> str:
    return ACTIVITY_TYPE_NAMES.get(activity_type, f"Tipo {activity_type}")


def format_activity_group(group: ActivityGroup) -> str:
    type_name = get_activity_type_name(group.activity_type)
    duration = format_duration(group.total_duration)
    active_count = len(group.active_sessions)
    history_count = len(group.history_sessions)

    result = f"**{group.activity_name}** ({type_name})\n"
    result += f"⏱️ Duração total: {duration}\n"
    result += f"📊 Sessões: {group.total_sessions} ({active_count} ativas, {history_count} finalizadas)\n"

    if group.active_users:
        result += f"👥 Usuários ativos: {', '.join(group.active_users)}\n"

    return result


# QUERY

async def get_activities_by_period(manager, period: str) -> List[ActivityGroup]:
    if period not in QUERY_PERIODS:
        raise ValueError(f"Unknown period: {period!r}")

    active, history = await manager.get_all_activities(period)
    now = manager.clock()

    groups: Dict[Tuple[int, str], ActivityGroup] = {}

    def group_for(activity_type, activity_name):
        key = (activity_type, activity_name)
        if key not in groups:
            groups[key] = ActivityGroup(activity_name, activity_type)
        return groups[key]

    for session in active:
        group = group_for(session.activity_type, session.activity_name)
        group.active_sessions.append(session)
        group.total_duration += now - session.start_timestamp
        if session.username not in group.active_users:
            group.active_users.append(session.username)

    for entry in history:
        group = group_for(entry.activity_type, entry.activity_name)
        group.history_sessions.append(entry)
        group.total_duration += entry.duration

    for group in groups.values():
        group.total_sessions = len(group.history_sessions) + len(group.active_sessions)

    return sorted(groups.values(), key=lambda g: g.total_duration, reverse=True)
