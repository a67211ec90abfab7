"""
Email templates: (notification type, context) -> subject + self-contained HTML.

Mail clients are unpredictable, so every template is table-based with inline styles only
(no <style>, <link> or <script>). Anything user-supplied goes through html.escape.
Prompt selection takes an injectable random.Random so tests can pin the output.
"""
import html
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from noted.core.clock import as_utc
from noted.core.constants import (
    DAILY_REMINDER,
    DEFAULT_DISPLAY_NAME,
    INACTIVE_USER,
    REMINDER_NOTIFICATION,
    STREAK_MILESTONE,
    WEEKLY_SUMMARY,
)
from noted.core.streaks import inactivity_threshold, milestone_for

WRITING_PROMPTS = (
    "What was the highlight of your day? What are you grateful for?",
    "What are three things you're grateful for today?",
    "What went well today? Celebrate your wins, big or small.",
    "What did you learn about yourself today?",
    "What are your intentions for tomorrow?",
    "How do you want to feel by the end of the week?",
    "What's one small thing that brought you joy recently?",
    "What challenges did you face, and how did you overcome them?",
    "What would you do if you knew you couldn't fail?",
    "What does success mean to you right now?",
)

WEEKLY_BANNER_MIN_STREAK = 7

_FONT = "-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif"


@dataclass(frozen=True)
class EmailContext:
    display_name: str | None
    current_streak: int
    total_entries: int
    app_url: str
    # reminder_notification only
    reminder_title: str | None = None
    reminder_description: str | None = None
    reminder_at: datetime | None = None
    timezone: str | None = None
    # inactive_user only
    days_inactive: int = 0


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str


def _esc(value) -> str:
    return html.escape(str(value), quote=True)


def _subject(value: str) -> str:
    # Header-safe: no CR/LF from user-supplied titles
    return " ".join(value.split())


def _greeting_name(ctx: EmailContext) -> str:
    return _esc((ctx.display_name or "").strip() or DEFAULT_DISPLAY_NAME)


def _link(ctx: EmailContext, path: str) -> str:
    return _esc(f"{ctx.app_url.rstrip('/')}{path}")


def _button(href: str, label: str, style: str) -> str:
    return (
        f'<a href="{href}" style="display: inline-block; text-decoration: none; padding: 16px 36px; '
        f'border-radius: 8px; font-size: 16px; font-weight: 600; margin: 0 8px; {style}">{label}</a>'
    )


def _cta_row(*buttons: str) -> str:
    return (
        '<table role="presentation" style="width: 100%; margin-bottom: 20px;">'
        f'<tr><td align="center">{"".join(buttons)}</td></tr></table>'
    )


def _layout(title: str, header_bg: str, header_html: str, body_html: str, footer_html: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
</head>
<body style="margin: 0; padding: 0; font-family: {_FONT}; background-color: #f5f5f5;">
  <table role="presentation" style="width: 100%; border-collapse: collapse;">
    <tr>
      <td align="center" style="padding: 40px 20px;">
        <table role="presentation" style="max-width: 600px; width: 100%; background-color: #ffffff; border-radius: 16px; overflow: hidden;">
          <tr>
            <td style="background: {header_bg}; padding: 40px 30px; text-align: center;">
              {header_html}
            </td>
          </tr>
          <tr>
            <td style="padding: 40px 30px;">
              {body_html}
            </td>
          </tr>
          <tr>
            <td style="background-color: #F8F9FA; padding: 24px 30px; text-align: center; border-top: 1px solid #E0E0E0;">
              {footer_html}
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def _footer(ctx: EmailContext, reason: str | None, color: str) -> str:
    reason_html = (
        f'<p style="margin: 0 0 12px; color: #90A4AE; font-size: 13px;">{reason}</p>' if reason else ""
    )
    return (
        f"{reason_html}"
        '<p style="margin: 0; color: #90A4AE; font-size: 13px;">'
        f'<a href="{_link(ctx, "/app/settings")}" style="color: {color}; text-decoration: none;">Manage preferences</a>'
        "</p>"
    )


def render_daily_reminder(ctx: EmailContext, rng: random.Random) -> RenderedEmail:
    prompt = rng.choice(WRITING_PROMPTS)
    streak_block = ""
    if ctx.current_streak > 0:
        streak_block = f"""
              <table role="presentation" style="width: 100%; margin-bottom: 24px;">
                <tr>
                  <td style="background-color: #FFE66D; border-radius: 12px; padding: 24px; text-align: center;">
                    <p style="margin: 0; font-size: 32px;">🔥</p>
                    <p style="margin: 8px 0 0; color: #2C3E50; font-size: 20px; font-weight: 600;">{ctx.current_streak}-day streak!</p>
                    <p style="margin: 8px 0 0; color: #2C3E50; font-size: 14px;">Keep the momentum going!</p>
                  </td>
                </tr>
              </table>"""
    cta = _cta_row(_button(_link(ctx, "/app/new"), "Start Writing →", "background-color: #D4AF37; color: #ffffff;"))
    body = f"""
              <p style="margin: 0 0 20px; color: #2C3E50; font-size: 18px; line-height: 1.6;">Hi {_greeting_name(ctx)}! 👋</p>
              <p style="margin: 0 0 24px; color: #546E7A; font-size: 16px; line-height: 1.6;">
                It's time to reflect on your day and capture your thoughts. Taking a few minutes to journal can help you process your experiences and track your personal growth.
              </p>{streak_block}
              <table role="presentation" style="width: 100%; margin-bottom: 28px;">
                <tr>
                  <td style="background-color: #F8F9FA; border-radius: 12px; padding: 24px;">
                    <p style="margin: 0 0 12px; color: #2C3E50; font-size: 16px; font-weight: 600;">💡 Writing Prompt:</p>
                    <p style="margin: 0; color: #546E7A; font-size: 15px; line-height: 1.6;">{_esc(prompt)}</p>
                  </td>
                </tr>
              </table>
              {cta}
              <p style="margin: 0; color: #90A4AE; font-size: 14px; text-align: center;">Take a moment for yourself today 💙</p>"""
    header = (
        '<p style="margin: 0 0 16px; font-size: 48px;">📝</p>'
        '<h1 style="margin: 0; color: #2C3E50; font-size: 28px; font-weight: 600;">Daily Journaling Reminder</h1>'
    )
    return RenderedEmail(
        subject="📝 Daily Journaling Reminder",
        html=_layout(
            "Daily Journaling Reminder",
            "#F4E4C1",
            header,
            body,
            _footer(ctx, "You're receiving this because you enabled daily reminders", "#D4AF37"),
        ),
    )


def render_weekly_summary(ctx: EmailContext) -> RenderedEmail:
    if ctx.current_streak >= WEEKLY_BANNER_MIN_STREAK:
        highlight = """
                  <td style="background-color: #FFD700; border-radius: 12px; padding: 24px; text-align: center;">
                    <p style="margin: 0 0 12px; font-size: 48px;">🎉</p>
                    <p style="margin: 0; color: #2C3E50; font-size: 20px; font-weight: 600;">Amazing! You journaled every day this week!</p>
                    <p style="margin: 12px 0 0; color: #2C3E50; font-size: 15px;">Consistency is the key to growth. Keep it up!</p>
                  </td>"""
    else:
        highlight = """
                  <td style="background-color: #F8F9FA; border-radius: 12px; padding: 24px; text-align: center;">
                    <p style="margin: 0; color: #2C3E50; font-size: 16px;">💡 <strong>Tip:</strong> Journaling regularly helps build self-awareness and reduces stress.</p>
                  </td>"""
    cta = _cta_row(
        _button(_link(ctx, "/app/calendar"), "View Calendar", "background-color: #2EC4B6; color: #ffffff;"),
        _button(_link(ctx, "/app/new"), "Write New Entry", "background-color: #ffffff; color: #2EC4B6; border: 2px solid #2EC4B6;"),
    )
    body = f"""
              <p style="margin: 0 0 24px; color: #2C3E50; font-size: 18px; line-height: 1.6;">Hi {_greeting_name(ctx)}! 👋</p>
              <p style="margin: 0 0 32px; color: #546E7A; font-size: 16px; line-height: 1.6;">
                Here's a look at your journaling journey this week. Every entry is a step toward self-discovery!
              </p>
              <table role="presentation" style="width: 100%; margin-bottom: 32px;">
                <tr>
                  <td style="width: 50%; padding: 20px; background-color: #F8F9FA; border-radius: 12px; text-align: center; vertical-align: top;" valign="top">
                    <p style="margin: 0 0 8px; font-size: 36px;">📝</p>
                    <p style="margin: 0; color: #2C3E50; font-size: 32px; font-weight: 700;">{ctx.total_entries}</p>
                    <p style="margin: 8px 0 0; color: #546E7A; font-size: 14px;">Total Entries</p>
                  </td>
                  <td style="width: 16px;"></td>
                  <td style="width: 50%; padding: 20px; background-color: #FFE66D; border-radius: 12px; text-align: center; vertical-align: top;" valign="top">
                    <p style="margin: 0 0 8px; font-size: 36px;">🔥</p>
                    <p style="margin: 0; color: #2C3E50; font-size: 32px; font-weight: 700;">{ctx.current_streak}</p>
                    <p style="margin: 8px 0 0; color: #2C3E50; font-size: 14px;">Day Streak</p>
                  </td>
                </tr>
              </table>
              <table role="presentation" style="width: 100%; margin-bottom: 32px;">
                <tr>{highlight}
                </tr>
              </table>
              {cta}
              <p style="margin: 0; color: #90A4AE; font-size: 14px; text-align: center;">Keep reflecting, keep growing 💙</p>"""
    header = (
        '<p style="margin: 0 0 16px; font-size: 48px;">📊</p>'
        '<h1 style="margin: 0; color: #2C3E50; font-size: 28px; font-weight: 600;">Your Weekly Summary</h1>'
    )
    return RenderedEmail(
        subject="📊 Your Weekly Journaling Summary",
        html=_layout(
            "Weekly Journaling Summary",
            "#A8DADC",
            header,
            body,
            _footer(ctx, "You're receiving weekly summaries as part of your journaling preferences", "#2EC4B6"),
        ),
    )


def render_streak_milestone(ctx: EmailContext) -> RenderedEmail:
    milestone = milestone_for(ctx.current_streak)
    header = f"""
              <p style="margin: 0 0 16px; font-size: 72px;">{milestone.emoji}</p>
              <h1 style="margin: 0 0 12px; color: #ffffff; font-size: 32px; font-weight: 700;">{_esc(milestone.title)}</h1>
              <p style="margin: 0; color: #ffffff; font-size: 18px;">{_esc(milestone.message)}</p>"""
    cta = _cta_row(_button(_link(ctx, "/app/calendar"), "View Your Progress", "background-color: #FF6B6B; color: #2C3E50;"))
    body = f"""
              <p style="margin: 0 0 24px; color: #2C3E50; font-size: 18px; line-height: 1.6; text-align: center;">Congratulations, {_greeting_name(ctx)}! 🎉</p>
              <p style="margin: 0 0 32px; color: #546E7A; font-size: 16px; line-height: 1.6; text-align: center;">
                You've reached an incredible milestone in your journaling journey. Your commitment to self-reflection and personal growth is truly inspiring!
              </p>
              <table role="presentation" style="width: 100%; margin-bottom: 32px;">
                <tr>
                  <td style="background-color: #FFE66D; border-radius: 12px; padding: 32px; text-align: center;">
                    <p style="margin: 0 0 16px; font-size: 64px;">🔥</p>
                    <p style="margin: 0; color: #2C3E50; font-size: 48px; font-weight: 700;">{ctx.current_streak}</p>
                    <p style="margin: 8px 0 0; color: #2C3E50; font-size: 18px; font-weight: 600;">Days Strong!</p>
                  </td>
                </tr>
              </table>
              <table role="presentation" style="width: 100%; margin-bottom: 32px;">
                <tr>
                  <td style="background-color: #F8F9FA; border-radius: 12px; padding: 24px; text-align: left; color: #546E7A; font-size: 15px; line-height: 1.8;">
                    <p style="margin: 0 0 16px; color: #2C3E50; font-size: 16px; font-weight: 600;">Why this matters:</p>
                    &bull; Building habits takes consistency and dedication<br>
                    &bull; Regular reflection leads to better self-awareness<br>
                    &bull; You're investing in your mental well-being<br>
                    &bull; Your future self will thank you for these insights
                  </td>
                </tr>
              </table>
              {cta}
              <p style="margin: 0; color: #90A4AE; font-size: 14px; text-align: center;">Keep up the amazing work! 💙</p>"""
    return RenderedEmail(
        subject=_subject(f"{milestone.emoji} {milestone.title}"),
        html=_layout("Streak Milestone Achieved!", "#FFD93D", header, body, _footer(ctx, None, "#FF6B6B")),
    )


def _format_local(when: datetime, tz_name: str | None) -> tuple[str, str]:
    tz_name = (tz_name or "").strip() or "UTC"
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        tz_name, tz = "UTC", ZoneInfo("UTC")
    local = as_utc(when).astimezone(tz)
    return local.strftime("%d %b %Y, %I:%M %p"), tz_name


def render_reminder_notification(ctx: EmailContext) -> RenderedEmail:
    title = (ctx.reminder_title or "").strip() or "Reminder"
    description = (ctx.reminder_description or "").strip()
    description_html = (
        f'<p style="margin: 0 0 24px; color: #546E7A; font-size: 16px; line-height: 1.5;">{_esc(description)}</p>'
        if description
        else ""
    )
    when_html = ""
    if ctx.reminder_at is not None:
        when, tz_name = _format_local(ctx.reminder_at, ctx.timezone)
        when_html = (
            f'<p style="margin: 0 0 24px; color: #90A4AE; font-size: 14px;">Set for: {_esc(when)} ({_esc(tz_name)})</p>'
        )
    header = f'<h1 style="margin: 0; color: #2C3E50; font-size: 26px; font-weight: 600;">🔔 Reminder: {_esc(title)}</h1>'
    cta = _cta_row(_button(_link(ctx, "/app/reminders"), "View Reminders", "background-color: #D4AF37; color: #ffffff;"))
    body = f"""
              <p style="margin: 0 0 16px; color: #2C3E50; font-size: 16px; line-height: 1.5;">Hi {_greeting_name(ctx)},</p>
              <p style="margin: 0 0 16px; color: #2C3E50; font-size: 16px; line-height: 1.5;">This is your reminder:</p>
              <p style="margin: 0 0 16px; color: #2C3E50; font-size: 16px; line-height: 1.5; font-weight: 600;">{_esc(title)}</p>
              {description_html}{when_html}
              {cta}"""
    return RenderedEmail(
        subject=_subject(f"🔔 Reminder: {title}"),
        html=_layout("Reminder", "#F4E4C1", header, body, _footer(ctx, "Sent from Noted - Your Personal Diary", "#D4AF37")),
    )


# Re-engagement copy keyed by the inactivity threshold reached: (emoji, subject, message)
INACTIVE_COPY: dict[int, tuple[str, str, str]] = {
    3: ("📝", "Time to check in", "It's been {days} days since your last entry. Take a moment to reflect on your day."),
    7: (
        "✨",
        "Keep your journaling habit alive!",
        "You haven't written in {days} days. Even a few words can make a difference in preserving your memories.",
    ),
    14: (
        "📖",
        "Your diary is waiting for you",
        "It's been {days} days since you last journaled. Life moves fast, so capture these moments before they fade.",
    ),
    30: (
        "🌟",
        "We miss you! Come back to your diary",
        "It's been {days} days since your last entry. Your thoughts and experiences are valuable, and we'd love to have you back!",
    ),
}


def render_inactive_user(ctx: EmailContext) -> RenderedEmail:
    threshold = inactivity_threshold(ctx.days_inactive) or min(INACTIVE_COPY)
    emoji, title, message = INACTIVE_COPY[threshold]
    header = (
        f'<p style="margin: 0 0 16px; font-size: 48px;">{emoji}</p>'
        f'<h1 style="margin: 0; color: #ffffff; font-size: 28px; font-weight: 600;">{_esc(title)}</h1>'
    )
    cta = _cta_row(_button(_link(ctx, "/app/new"), "✍️ Write an Entry", "background-color: #D4AF37; color: #ffffff;"))
    body = f"""
              <p style="margin: 0 0 20px; color: #2C3E50; font-size: 18px; line-height: 1.6;">Hi {_greeting_name(ctx)},</p>
              <p style="margin: 0 0 28px; color: #546E7A; font-size: 16px; line-height: 1.8;">{_esc(message.format(days=ctx.days_inactive))}</p>
              <table role="presentation" style="width: 100%; margin-bottom: 28px;">
                <tr>
                  <td style="background-color: #FFF5E6; border-left: 4px solid #D4AF37; border-radius: 8px; padding: 20px;">
                    <p style="margin: 0; color: #2C3E50; font-size: 15px; line-height: 1.6;">💡 <strong>Quick Tip:</strong> Even 5 minutes of journaling can help you process your day, reduce stress, and preserve memories that would otherwise be forgotten.</p>
                  </td>
                </tr>
              </table>
              {cta}
              <p style="margin: 0; color: #90A4AE; font-size: 14px; text-align: center;">Your entries are private and secure. Only you can see them.</p>"""
    return RenderedEmail(
        subject=_subject(f"{title} {emoji}"),
        html=_layout(title, "#D4AF37", header, body, _footer(ctx, "Don't want these emails? Update your preferences below", "#D4AF37")),
    )


_RENDERERS: dict[str, Callable[[EmailContext, random.Random], RenderedEmail]] = {
    DAILY_REMINDER: render_daily_reminder,
    WEEKLY_SUMMARY: lambda ctx, _rng: render_weekly_summary(ctx),
    STREAK_MILESTONE: lambda ctx, _rng: render_streak_milestone(ctx),
    REMINDER_NOTIFICATION: lambda ctx, _rng: render_reminder_notification(ctx),
    INACTIVE_USER: lambda ctx, _rng: render_inactive_user(ctx),
}


def render_template(
    notification_type: str,
    ctx: EmailContext,
    rng: random.Random | None = None,
) -> RenderedEmail:
    """Render one email. Pure for a given rng state; unknown types raise ValueError."""
    renderer = _RENDERERS.get(notification_type)
    if renderer is None:
        raise ValueError(f"Unknown notification type: {notification_type}")
    return renderer(ctx, rng if rng is not None else random.Random())
