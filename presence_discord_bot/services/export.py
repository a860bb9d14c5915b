import csv
import json
import logging
from pathlib import Path
from typing import List

from presence_discord_bot.config import Config

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv", "both")

USER_HEADERS = [
    "User ID",
    "Username",
    "Total Duration (ms)",
    "Total Duration (formatted)",
    "Total Sessions",
    "Average Session Duration (ms)",
    "Average Session Duration (formatted)",
    "Solo Sessions",
    "Group Sessions",
    "Peak Hour",
    "Peak Day",
]

ACTIVITY_HEADERS = [
    "Activity Name",
    "Activity Type",
    "Total Duration (ms)",
    "Total Duration (formatted)",
    "Total Sessions",
    "Unique Users",
    "Average Session Duration (ms)",
    "Average Session Duration (formatted)",
    "Solo Sessions",
    "Group Sessions",
    "Peak Hour",
]

TOP_ACTIVITY_COLUMNS = 3


def format_duration(milliseconds):
    milliseconds = int(milliseconds)
    hours = milliseconds // (1000 * 60 * 60)
    minutes = (milliseconds % (1000 * 60 * 60)) // (1000 * 60)
    seconds = (milliseconds % (1000 * 60)) // 1000
    return f"{hours}h {minutes}m {seconds}s"


def ensure_export_dir(export_dir=None) -> Path:
    path = Path(export_dir or Config.EXPORT_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _write_rows(path: Path, rows):
    with open(path, "w", encoding="utf-8", newline="") as f:
        csv.writer(f).writerows(rows)


# JSON

def export_to_json(data, export_dir=None) -> Path:
    path = ensure_export_dir(export_dir) / f"retrospectiva-{data.period}-{data.generated_at}.json"
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data.to_dict(), f, indent=2, ensure_ascii=False)
    return path


# CSV

def user_rows(users):
    headers = list(USER_HEADERS)
    for i in range(1, TOP_ACTIVITY_COLUMNS + 1):
        headers += [f"Top Activity {i}", f"Top Activity {i} Duration", f"Top Activity {i} Sessions"]

    rows = [headers]
    for user in users:
        row = [
            user.user_id,
            user.username,
            user.total_duration,
            format_duration(user.total_duration),
            user.total_sessions,
            user.average_session_duration,
            format_duration(user.average_session_duration),
            user.solo_sessions,
            user.group_sessions,
            user.peak_hour,
            user.peak_day,
        ]
        top = user.favorite_activities[:TOP_ACTIVITY_COLUMNS]
        for i in range(TOP_ACTIVITY_COLUMNS):
            if i < len(top):
                row += [top[i].name, top[i].duration, top[i].sessions]
            else:
                row += ["", 0, 0]
        rows.append(row)
    return rows


def activity_rows(activities):
    rows = [list(ACTIVITY_HEADERS)]
    for activity in activities:
        rows.append([
            activity.activity_name,
            activity.activity_type,
            activity.total_duration,
            format_duration(activity.total_duration),
            activity.total_sessions,
            activity.unique_users,
            activity.average_session_duration,
            format_duration(activity.average_session_duration),
            activity.solo_sessions,
            activity.group_sessions,
            activity.peak_hour,
        ])
    return rows


def temporal_rows(temporal):
    rows = [["=== Por Hora ==="], ["Hour", "Duration (ms)", "Duration (formatted)"]]
    for hour, duration in enumerate(temporal.by_hour):
        rows.append([hour, duration, format_duration(duration)])

    rows.append([])
    rows.append(["=== Por Dia da Semana ==="])
    rows.append(["Day", "Duration (ms)", "Duration (formatted)"])
    for day, duration in enumerate(temporal.by_day_of_week):
        rows.append([Config.DAY_NAMES[day], duration, format_duration(duration)])
    return rows


def export_to_csv(data, export_dir=None) -> List[Path]:
    directory = ensure_export_dir(export_dir)
    prefix = f"retrospectiva-{data.period}-{data.generated_at}"

    files = []
    for suffix, rows in (
        ("usuarios", user_rows(data.users)),
        ("atividades", activity_rows(data.activities)),
        ("tendencias", temporal_rows(data.temporal)),
    ):
        path = directory / f"{prefix}-{suffix}.csv"
        _write_rows(path, rows)
        files.append(path)

    return files


def export_retrospective(data, fmt: str = "both", export_dir=None) -> List[Path]:
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unknown export format: {fmt!r}")

    files = []
    if fmt in ("json", "both"):
        files.append(export_to_json(data, export_dir))
    if fmt in ("csv", "both"):
        files.extend(export_to_csv(data, export_dir))

    logger.info(f"📁 Exported {data.period} retrospective to {len(files)} file(s)")
    return files


def remove_exports(paths) -> None:
    """Delete export files once they have been delivered."""
    for path in paths:
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"⚠️ Could not remove export {path}: {e}")
