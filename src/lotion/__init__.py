"""lotion - mirror Notion databases and pages into local Markdown files."""

__version__ = "0.1.0"
