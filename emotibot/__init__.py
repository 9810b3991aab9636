"""
Emotibot - An emotion check-in bot for Slack.

This package receives `/emoji` slash commands, stores each check-in, asks
Gemini for a sentiment score and a mood-improving task, and replies in the
channel with the suggestion.
"""

__version__ = "0.1.0"
