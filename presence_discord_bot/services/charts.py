from io import BytesIO

import matplotlib
import matplotlib.pyplot as plt
import numpy as np

from presence_discord_bot.config import Config

matplotlib.use('Agg')

MS_PER_HOUR = 1000 * 60 * 60

BAR_COLOR = "#5865F2"
PEAK_COLOR = "#FFD700"


def _bar_colors(values):
    colors = [BAR_COLOR] * len(values)
    if np.any(values):
        colors[int(np.argmax(values))] = PEAK_COLOR
    return colors


def render_temporal_chart(temporal) -> BytesIO:
    """Hour and weekday histograms of a retrospective as a PNG in memory."""

    by_hour = np.asarray(temporal.by_hour, dtype=float) / MS_PER_HOUR
    by_day = np.asarray(temporal.by_day_of_week, dtype=float) / MS_PER_HOUR

    plt.style.use('default')
    fig, (ax_hour, ax_day) = plt.subplots(2, 1, figsize=(10, 8))

    ax_hour.bar(np.arange(24), by_hour, color=_bar_colors(by_hour),
                edgecolor='white', linewidth=1)
    ax_hour.set_title("Atividade por hora")
    ax_hour.set_xticks(np.arange(24))
    ax_hour.set_xlabel("Hora")
    ax_hour.set_ylabel("Horas")

    ax_day.bar(np.arange(7), by_day, color=_bar_colors(by_day),
               edgecolor='white', linewidth=1)
    ax_day.set_title("Atividade por dia da semana")
    ax_day.set_xticks(np.arange(7))
    ax_day.set_xticklabels([name[:3] for name in Config.DAY_NAMES])
    ax_day.set_ylabel("Horas")

    fig.tight_layout()

    buffer = BytesIO()
    fig.savefig(buffer, format='png', bbox_inches='tight',
                dpi=100, transparent=False, facecolor='white')
    buffer.seek(0)
    plt.close(fig)

    return buffer
