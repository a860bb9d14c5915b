import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Tuple

import numpy as np
import pytz

from presence_discord_bot.config import Config
from presence_discord_bot.services.session_manager import SOLO

logger = logging.getLogger(__name__)

RETROSPECTIVE_PERIODS = ("day", "week", "month", "all")
MS_PER_HOUR = 1000 * 60 * 60


# MODELS

@dataclass
class FavoriteActivity:
    name: str
    duration: int
    sessions: int

    def to_dict(self):
        return {'name': self.name, 'duration': self.duration, 'sessions': self.sessions}


@dataclass
class UserStatistics:
    user_id: str
    username: str
    total_duration: int
    total_sessions: int
    average_session_duration: float
    favorite_activities: List[FavoriteActivity]
    solo_sessions: int
    group_sessions: int
    peak_hour: int
    peak_day: int

    def to_dict(self):
        return {
            'userId': self.user_id,
            'username': self.username,
            'totalDuration': self.total_duration,
            'totalSessions': self.total_sessions,
            'averageSessionDuration': self.average_session_duration,
            'favoriteActivities': [a.to_dict() for a in self.favorite_activities],
            'soloSessions': self.solo_sessions,
            'groupSessions': self.group_sessions,
            'peakHour': self.peak_hour,
            'peakDay': self.peak_day,
        }


@dataclass
class ActivityStatistics:
    activity_name: str
    activity_type: int
    total_duration: int
    total_sessions: int
    unique_users: int
    average_session_duration: float
    solo_sessions: int
    group_sessions: int
    peak_hour: int

    def to_dict(self):
        return {
            'activityName': self.activity_name,
            'activityType': self.activity_type,
            'totalDuration': self.total_duration,
            'totalSessions': self.total_sessions,
            'uniqueUsers': self.unique_users,
            'averageSessionDuration': self.average_session_duration,
            'soloSessions': self.solo_sessions,
            'groupSessions': self.group_sessions,
            'peakHour': self.peak_hour,
        }


@dataclass
class GeneralStatistics:
    total_hours: float = 0.0
    total_sessions: int = 0
    most_popular_activity: str = "N/A"
    most_active_user: str = "N/A"
    peak_hour: int = 0
    peak_day: int = 0

    def to_dict(self):
        return {
            'totalHours': self.total_hours,
            'totalSessions': self.total_sessions,
            'mostPopularActivity': self.most_popular_activity,
            'mostActiveUser': self.most_active_user,
            'peakHour': self.peak_hour,
            'peakDay': self.peak_day,
        }


@dataclass
class TemporalDistribution:
    by_hour: List[int] = field(default_factory=lambda: [0] * 24)
    by_day_of_week: List[int] = field(default_factory=lambda: [0] * 7)

    def to_dict(self):
        return {'byHour': list(self.by_hour), 'byDayOfWeek': list(self.by_day_of_week)}


@dataclass
class RetrospectiveData:
    period: str
    generated_at: int
    general: GeneralStatistics
    users: List[UserStatistics]
    activities: List[ActivityStatistics]
    temporal: TemporalDistribution

    @property
    def is_empty(self) -> bool:
        return not self.users and not self.activities

    def to_dict(self):
        return {
            'period': self.period,
            'generatedAt': self.generated_at,
            'general': self.general.to_dict(),
            'users': [u.to_dict() for u in self.users],
            'activities': [a.to_dict() for a in self.activities],
            'temporal': self.temporal.to_dict(),
        }


# HELPERS

def get_timezone(tz=None):
    if tz is None:
        return pytz.timezone(Config.TIMEZONE)
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def local_hour_and_day(timestamp: int, tz) -> Tuple[int, int]:
    """Hour (0-23) and weekday (0 = Sunday) of an epoch-ms timestamp in tz."""
    moment = datetime.fromtimestamp(timestamp / 1000, tz=tz)
    return moment.hour, moment.isoweekday() % 7


def peak_index(buckets) -> int:
    # argmax returns the first index holding the maximum
    return int(np.argmax(buckets))


class _Tally:

    def __init__(self):
        self.total_duration = 0
        self.sessions = 0
        self.solo_sessions = 0
        self.group_sessions = 0
        self.by_hour = [0] * 24
        self.by_day = [0] * 7
        self.user_ids = set()
        self.username = None
        self.activities: Dict[Tuple[int, str], List[int]] = {}

    def add(self, user_id, username, activity_name, activity_type, start, duration, tz,
            session_type=None):
        self.total_duration += duration
        self.sessions += 1
        if session_type is not None:
            if session_type == SOLO:
                self.solo_sessions += 1
            else:
                self.group_sessions += 1

        hour, day = local_hour_and_day(start, tz)
        self.by_hour[hour] += duration
        self.by_day[day] += duration

        self.user_ids.add(user_id)
        if self.username is None:
            self.username = username

        key = (activity_type, activity_name)
        totals = self.activities.setdefault(key, [0, 0])
        totals[0] += duration
        totals[1] += 1

    @property
    def average(self) -> float:
        return self.total_duration / self.sessions if self.sessions else 0


# STATISTICS

def _empty_retrospective(period, generated_at):
    return RetrospectiveData(
        period=period,
        generated_at=generated_at,
        general=GeneralStatistics(),
        users=[],
        activities=[],
        temporal=TemporalDistribution(),
    )


def build_retrospective(period, history, active_sessions, now, tz=None) -> RetrospectiveData:
    """Aggregate finished history and live sessions into a retrospective.

    Live sessions count with their elapsed time up to ``now``. Hours and
    weekdays are bucketed on the local start time of each session.
    """
    tz = get_timezone(tz)

    if not history and not active_sessions:
        return _empty_retrospective(period, now)

    user_tallies: Dict[str, _Tally] = {}
    activity_tallies: Dict[Tuple[int, str], _Tally] = {}
    overall = _Tally()

    def record(entry, duration, session_type):
        activity_key = (entry.activity_type, entry.activity_name)
        for tally in (user_tallies.setdefault(entry.user_id, _Tally()),
                      activity_tallies.setdefault(activity_key, _Tally()),
                      overall):
            tally.add(entry.user_id, entry.username, entry.activity_name, entry.activity_type,
                      entry.start_timestamp, duration, tz, session_type)

    for entry in history:
        record(entry, entry.duration, entry.session_type)

    for session in active_sessions:
        record(session, now - session.start_timestamp, None)

    users = []
    for user_id, tally in user_tallies.items():
        favorites = sorted(
            (FavoriteActivity(name, totals[0], totals[1])
             for (_, name), totals in tally.activities.items()),
            key=lambda a: a.duration,
            reverse=True
        )[:Config.TOP_ACTIVITIES]

        users.append(UserStatistics(
            user_id=user_id,
            username=tally.username or "Unknown",
            total_duration=tally.total_duration,
            total_sessions=tally.sessions,
            average_session_duration=tally.average,
            favorite_activities=favorites,
            solo_sessions=tally.solo_sessions,
            group_sessions=tally.group_sessions,
            peak_hour=peak_index(tally.by_hour),
            peak_day=peak_index(tally.by_day),
        ))

    activities = []
    for (activity_type, activity_name), tally in activity_tallies.items():
        activities.append(ActivityStatistics(
            activity_name=activity_name,
            activity_type=activity_type,
            total_duration=tally.total_duration,
            total_sessions=tally.sessions,
            unique_users=len(tally.user_ids),
            average_session_duration=tally.average,
            solo_sessions=tally.solo_sessions,
            group_sessions=tally.group_sessions,
            peak_hour=peak_index(tally.by_hour),
        ))

    users.sort(key=lambda u: u.total_duration, reverse=True)
    activities.sort(key=lambda a: a.total_duration, reverse=True)

    temporal = TemporalDistribution(overall.by_hour, overall.by_day)

    general = GeneralStatistics(
        total_hours=sum(u.total_duration for u in users) / MS_PER_HOUR,
        total_sessions=len(history) + len(active_sessions),
        most_popular_activity=activities[0].activity_name if activities else "N/A",
        most_active_user=users[0].username if users else "N/A",
        peak_hour=peak_index(temporal.by_hour),
        peak_day=peak_index(temporal.by_day_of_week),
    )

    return RetrospectiveData(period, now, general, users, activities, temporal)


async def generate_retrospective(manager, period: str, tz=None) -> RetrospectiveData:
    if period not in RETROSPECTIVE_PERIODS:
        raise ValueError(f"Unknown period: {period!r}")

    active, history = await manager.get_all_activities(period)
    now = manager.clock()

    logger.info(
        f"Building {period} retrospective from {len(history)} finished and {len(active)} active sessions"
    )
    return build_retrospective(period, history, active, now, tz)
