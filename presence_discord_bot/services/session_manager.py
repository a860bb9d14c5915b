import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from presence_discord_bot.config import Config

logger = logging.getLogger(__name__)

SOLO = "solo"
GROUP = "group"

# Storage keys
SESSIONS_PREFIX = "sessions"
USER_SESSIONS_PREFIX = "user-sessions"
ALL_ACTIVE_SESSIONS_KEY = "all-active-sessions"
HISTORY_KEY = "activity-history:all"


def now_ms() -> int:
    return int(time.time() * 1000)


def get_group_session_key(activity_name: str, activity_type: int) -> str:
    return f"{SESSIONS_PREFIX}:{activity_type}:{activity_name}"


def get_user_session_key(user_id: str) -> str:
    return f"{USER_SESSIONS_PREFIX}:{user_id}"


def get_period_cutoff(period: str, now: int) -> Optional[int]:
    if period == "all":
        return None
    if period not in Config.PERIOD_WINDOWS:
        raise ValueError(f"Unknown period: {period!r}")
    return now - int(Config.PERIOD_WINDOWS[period].total_seconds() * 1000)


# MODELS

@dataclass
class UserSession:
    user_id: str
    username: str
    avatar_url: str
    activity_name: str
    activity_type: int
    start_timestamp: int

    def matches(self, activity_name: str, activity_type: int) -> bool:
        return self.activity_name == activity_name and self.activity_type == activity_type

    def to_dict(self) -> dict:
        return {
            'userId': self.user_id,
            'username': self.username,
            'avatarUrl': self.avatar_url,
            'activityName': self.activity_name,
            'activityType': self.activity_type,
            'startTimestamp': self.start_timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserSession":
        return cls(
            user_id=str(data['userId']),
            username=data.get('username', 'Unknown'),
            avatar_url=data.get('avatarUrl', ''),
            activity_name=data['activityName'],
            activity_type=int(data['activityType']),
            start_timestamp=int(data['startTimestamp']),
        )


@dataclass
class GroupSession:
    activity_name: str
    activity_type: int
    created_at: int
    users: Dict[str, UserSession] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return get_group_session_key(self.activity_name, self.activity_type)

    def to_dict(self) -> dict:
        return {
            'activityName': self.activity_name,
            'activityType': self.activity_type,
            'users': {user_id: session.to_dict() for user_id, session in self.users.items()},
            'createdAt': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GroupSession":
        return cls(
            activity_name=data['activityName'],
            activity_type=int(data['activityType']),
            created_at=int(data['createdAt']),
            users={user_id: UserSession.from_dict(s)
                   for user_id, s in (data.get('users') or {}).items()},
        )


@dataclass(frozen=True)
class ActivityHistory:
    user_id: str
    username: str
    activity_name: str
    activity_type: int
    start_timestamp: int
    end_timestamp: int
    duration: int
    session_type: str

    def to_dict(self) -> dict:
        return {
            'userId': self.user_id,
            'username': self.username,
            'activityName': self.activity_name,
            'activityType': self.activity_type,
            'startTimestamp': self.start_timestamp,
            'endTimestamp': self.end_timestamp,
            'duration': self.duration,
            'sessionType': self.session_type,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ActivityHistory":
        return cls(
            user_id=str(data['userId']),
            username=data.get('username', 'Unknown'),
            activity_name=data['activityName'],
            activity_type=int(data['activityType']),
            start_timestamp=int(data['startTimestamp']),
            end_timestamp=int(data['endTimestamp']),
            duration=int(data['duration']),
            session_type=data.get('sessionType', SOLO),
        )


@dataclass
class StartResult:
    session_type: str
    was_already_group: bool


@dataclass
class EndResult:
    session_type: str
    duration: int
    remaining_users: List[str]
    user_session: UserSession


# SESSION MANAGER

class SessionManager:
    """Tracks who is doing what, and for how long.

    Every active session is kept in three places: the user's own list, the
    member map of the activity's group session and the global active list.
    Each public call updates all of them before returning. Calls are awaited
    one after the other by the presence listener, so no locking is done.
    """

    def __init__(self, storage, api_client=None, clock=now_ms):
        self.storage = storage
        self.api_client = api_client
        self.clock = clock

    # STORE ACCESS

    async def get_group_session(self, activity_name: str, activity_type: int) -> Optional[GroupSession]:
        data = await self.storage.get_item(get_group_session_key(activity_name, activity_type))
        if not data:
            return None
        return GroupSession.from_dict(data)

    async def _save_group_session(self, group: GroupSession):
        await self.storage.set_item(group.key, group.to_dict())

    async def get_user_active_sessions(self, user_id: str) -> List[UserSession]:
        data = await self.storage.get_item(get_user_session_key(user_id)) or []
        return [UserSession.from_dict(s) for s in data]

    async def _save_user_sessions(self, user_id: str, sessions: List[UserSession]):
        key = get_user_session_key(user_id)
        if sessions:
            await self.storage.set_item(key, [s.to_dict() for s in sessions])
        else:
            await self.storage.remove_item(key)

    async def get_all_active_sessions(self) -> List[UserSession]:
        data = await self.storage.get_item(ALL_ACTIVE_SESSIONS_KEY) or []
        return [UserSession.from_dict(s) for s in data]

    async def _save_all_active_sessions(self, sessions: List[UserSession]):
        await self.storage.set_item(ALL_ACTIVE_SESSIONS_KEY, [s.to_dict() for s in sessions])

    async def get_history(self) -> List[ActivityHistory]:
        data = await self.storage.get_item(HISTORY_KEY) or []
        return [ActivityHistory.from_dict(h) for h in data]

    async def _append_history(self, entry: ActivityHistory):
        data = await self.storage.get_item(HISTORY_KEY) or []
        data.append(entry.to_dict())
        await self.storage.set_item(HISTORY_KEY, data)

    async def get_group_session_users(self, activity_name: str, activity_type: int) -> List[UserSession]:
        group = await self.get_group_session(activity_name, activity_type)
        if group is None:
            return []
        return list(group.users.values())

    async def get_all_activities(self, period: str) -> Tuple[List[UserSession], List[ActivityHistory]]:
        """Active sessions started and history entries ended inside the period window."""
        cutoff = get_period_cutoff(period, self.clock())

        active = await self.get_all_active_sessions()
        history = await self.get_history()

        if cutoff is not None:
            active = [s for s in active if s.start_timestamp >= cutoff]
            history = [h for h in history if h.end_timestamp >= cutoff]

        history.sort(key=lambda h: h.end_timestamp, reverse=True)
        return active, history

    # SESSION LIFECYCLE

    async def start_user_activity(self, user_id: str, username: str, avatar_url: str,
                                  activity_name: str, activity_type: int) -> StartResult:
        now = self.clock()
        user_sessions = await self.get_user_active_sessions(user_id)
        group = await self.get_group_session(activity_name, activity_type)

        existing = next((s for s in user_sessions if s.matches(activity_name, activity_type)), None)
        if existing is not None:
            logger.debug(
                f"{username} ({user_id}) already has an active {activity_name} session"
            )
            if group is None:
                group = GroupSession(activity_name, activity_type, existing.start_timestamp)
            if user_id not in group.users:
                group.users[user_id] = existing
                await self._save_group_session(group)
            size = len(group.users)
            return StartResult(GROUP if size > 1 else SOLO, size > 1)

        user_session = UserSession(
            user_id=user_id,
            username=username,
            avatar_url=avatar_url or '',
            activity_name=activity_name,
            activity_type=activity_type,
            start_timestamp=now,
        )

        user_sessions.append(user_session)
        await self._save_user_sessions(user_id, user_sessions)

        all_active = await self.get_all_active_sessions()
        all_active.append(user_session)
        await self._save_all_active_sessions(all_active)

        if group is None:
            group = GroupSession(activity_name, activity_type, now)
        was_already_group = len(group.users) > 1

        group.users[user_id] = user_session
        await self._save_group_session(group)

        session_type = GROUP if len(group.users) > 1 else SOLO

        await self._notify(user_session, joined=True)

        return StartResult(session_type, was_already_group)

    async def end_user_activity(self, user_id: str, activity_name: str,
                                activity_type: int) -> Optional[EndResult]:
        user_sessions = await self.get_user_active_sessions(user_id)
        index = next((i for i, s in enumerate(user_sessions)
                      if s.matches(activity_name, activity_type)), None)
        if index is None:
            return None

        user_session = user_sessions[index]
        end = self.clock()
        duration = end - user_session.start_timestamp

        group = await self.get_group_session(activity_name, activity_type)

        if group is None:
            logger.warning(
                f"No group session for {activity_type}:{activity_name} while ending {user_id}, treating as solo"
            )
            session_type = SOLO
        else:
            session_type = GROUP if len(group.users) > 1 else SOLO

        await self._append_history(ActivityHistory(
            user_id=user_id,
            username=user_session.username,
            activity_name=activity_name,
            activity_type=activity_type,
            start_timestamp=user_session.start_timestamp,
            end_timestamp=end,
            duration=duration,
            session_type=session_type,
        ))

        del user_sessions[index]
        await self._save_user_sessions(user_id, user_sessions)

        all_active = await self.get_all_active_sessions()
        all_active = [s for s in all_active
                      if not (s.user_id == user_id and s.matches(activity_name, activity_type))]
        await self._save_all_active_sessions(all_active)

        remaining_users = []
        if group is not None:
            group.users.pop(user_id, None)
            remaining_users = list(group.users.keys())
            if remaining_users:
                await self._save_group_session(group)
            else:
                await self.storage.remove_item(group.key)

        await self._notify(user_session, joined=False)

        return EndResult(session_type, duration, remaining_users, user_session)

    async def end_all_user_sessions(self, user_id: str) -> List[EndResult]:
        results = []
        for session in await self.get_user_active_sessions(user_id):
            result = await self.end_user_activity(user_id, session.activity_name, session.activity_type)
            if result:
                results.append(result)
        return results

    # NOTIFICATIONS

    async def _notify(self, session: UserSession, joined: bool):
        if self.api_client is None or not self.api_client.enabled:
            return

        register = self.api_client.register_player_joined if joined else self.api_client.register_player_left
        try:
            response = await register(session.user_id, session.avatar_url,
                                      session.username, session.activity_name)
        except Exception as e:
            logger.error(f"[API ERROR] Notification for {session.user_id} failed: {e!r}")
            return

        if not response.success:
            logger.warning(
                f"Event for {session.username} on {session.activity_name} not registered: {response.message}"
            )
