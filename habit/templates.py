"""Reminder and milestone message bodies."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape

from .models import Habit, UserContact
from .streaks import milestone_label

DEFAULT_FRONTEND_URL = "http://localhost:5173"


@dataclass(frozen=True)
class MessageContent:
    subject: str
    text: str
    html: str


def _greeting_name(user: UserContact) -> str:
    if user.display_name:
        return user.display_name
    return user.email.split("@")[0] or "there"


def render_reminder(habit: Habit, user: UserContact, now: datetime, frontend_url: str = DEFAULT_FRONTEND_URL) -> MessageContent:
    habits_url = f"{frontend_url.rstrip('/')}/habits"
    name = _greeting_name(user)
    stats = habit.stats
    preferred = ", ".join(habit.reminder.tags()) or "any time"
    lines = [
        f"Hello {name},",
        "",
        f'It\'s time to work on your habit: "{habit.name}"',
    ]
    if habit.description:
        lines.append(f"Description: {habit.description}")
    if habit.category:
        lines.append(f"Category: {habit.category}")
    lines += [
        f"Scheduled for: {now:%H:%M} (preferred times: {preferred})",
        "",
        f"Current streak: {stats.current_streak} days",
        f"Success rate: {stats.success_rate:.1f}%",
    ]
    if habit.collaborators:
        lines.append(f"{len(habit.collaborators) + 1} people are working on this habit")
    lines += ["", f"Mark as complete: {habits_url}"]
    text = "\n".join(lines)

    html = (
        f"<h2>Hello {escape(name)},</h2>"
        f"<p>It's time to work on <strong>{escape(habit.name)}</strong>.</p>"
        + (f"<p>{escape(habit.description)}</p>" if habit.description else "")
        + f"<ul><li>Current streak: {stats.current_streak} days</li>"
        f"<li>Success rate: {stats.success_rate:.1f}%</li>"
        f"<li>Preferred times: {escape(preferred)}</li></ul>"
        f'<p><a href="{escape(habits_url)}">Mark as complete</a></p>'
    )
    return MessageContent(
        subject=f"Habit Reminder: {habit.name}",
        text=text,
        html=html,
    )


def render_milestone(habit: Habit, user: UserContact, streak: int, frontend_url: str = DEFAULT_FRONTEND_URL) -> MessageContent:
    habit_url = f"{frontend_url.rstrip('/')}/habits/{habit.habit_id}"
    name = _greeting_name(user)
    label = milestone_label(streak)
    text = (
        f"Amazing job, {name}!\n\n"
        f'You have kept "{habit.name}" going for {streak} consecutive days ({label}).\n\n'
        f"Continue your streak: {habit_url}"
    )
    html = (
        f"<h2>Amazing job, {escape(name)}!</h2>"
        f"<p>You have kept <strong>{escape(habit.name)}</strong> going for "
        f"{streak} consecutive days.</p>"
        f"<h3>{escape(label.upper())} STREAK</h3>"
        f'<p><a href="{escape(habit_url)}">Continue your streak</a></p>'
    )
    return MessageContent(
        subject=f"{streak}-Day Streak Milestone: {habit.name}!",
        text=text,
        html=html,
    )
