"""User-facing message templates sent by the bot."""

from __future__ import annotations


def welcome_message(name: str) -> str:
    return (
        f"Welcome **{name}**!\n\n"
        "🔐 **Verification Required**\n"
        "To access all server channels, you need to verify your identity.\n\n"
        "📨 **Check Your Private Messages**\n"
        "I've sent you a private message with verification instructions.\n\n"
        "❓ **Need Help?**\n"
        "If you don't receive a DM, run `/verify` or contact an administrator."
    )


def verification_message(name: str) -> str:
    return (
        f"👋 **Hello, {name}!**\n\n"
        "🔐 **Identity Verification Required**\n\n"
        "To gain full access to the server, please reply to this message with "
        "your user ID.\n\n"
        "Example: `5342a99-5a43-112g-d771-s34233v38g11`\n\n"
        "If you don't know your user ID, please contact an administrator."
    )


def welcome_back_message(name: str) -> str:
    return (
        f"👋 **Welcome back, {name}!**\n\n"
        "You're already verified, so your roles have been restored automatically."
    )


def success_message(name: str, season_id: str | None, roles: list[str]) -> str:
    season = f" for season **{season_id}**" if season_id else ""
    role_list = ", ".join(roles) if roles else "(none)"
    return (
        "✅ **Verification Successful!**\n\n"
        f"Welcome, **{name}**! You are verified{season}.\n"
        f"• Nickname: **{name}**\n"
        f"• Roles: {role_list}\n\n"
        "If anything looks wrong, please contact an administrator."
    )


def error_message(error: str) -> str:
    return (
        "❌ **Verification Failed**\n\n"
        f"{error}\n\n"
        "**Reply with your correct user ID to try again.**"
    )


def status_message(display_name: str, verification_ids: dict[str, str]) -> str:
    seasons = ", ".join(sorted(verification_ids)) or "(none)"
    return f"✅ Verified as **{display_name}**. Seasons: {seasons}"
