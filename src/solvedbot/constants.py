from __future__ import annotations

from typing import Final

# Discord limits
MAX_MESSAGE_LENGTH: Final[int] = 2000
MAX_EMBED_DESCRIPTION: Final[int] = 4096
MAX_EMBED_TITLE: Final[int] = 256
MAX_QUOTE_LENGTH: Final[int] = 1500

# Jobs
REMOVAL_JOB_NAME: Final[str] = "solved-removal"
STATS_JOB_NAME: Final[str] = "update-stats-page"
DEFAULT_STATS_CRON: Final[str] = "0 0 * * *"
DEFAULT_JOB_POLL_SECONDS: Final[int] = 15
JOB_BATCH_LIMIT: Final[int] = 50

# Removal policy
DEFAULT_REMOVAL_DELAY_HOURS: Final[int] = 48
MAX_REMOVAL_DELAY_HOURS: Final[int] = 24 * 90

# Solved label
SOLVED_LABEL_TEXT: Final[str] = "✓ Solved"
SOLVED_LABEL_BACKGROUND: Final[str] = "#46d160"
SOLVED_LABEL_TEXT_COLOR: Final[str] = "light"
SOLVED_TAG_NAME: Final[str] = "Solved"

# Stats page
STATS_PAGE_KEY: Final[str] = "solvedbot-stats"
STATS_PAGE_REASON: Final[str] = "Daily stats update"

# Colors (hex values)
COLORS = {
    "default": 0x5865F2,
    "success": 0x46D160,
    "error": 0xED4245,
    "muted": 0x4F545C,
}

# Error messages
ERROR_MESSAGES = {
    "missing_permissions": "You don't have permission to use this command.",
    "not_logged_in": "Please log in to use this feature.",
    "not_author_or_mod": "Only the post author or mods can mark as solved.",
    "mod_only": "Stats are mod-only.",
    "not_a_post": "This command only works inside a forum post.",
    "mark_failed": "Failed to mark as solved.",
    "database_error": "A database error occurred. Please try again later.",
    "command_failed": "Something went wrong running that command.",
}

# Success messages
SUCCESS_MESSAGES = {
    "marked_solved": "✓ Post marked as solved!",
    "already_solved": "This post is already marked as solved.",
    "configuration_saved": "Configuration saved successfully.",
}
