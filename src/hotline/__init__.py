"""Hotline - Claude Code hooks with sound effects and notifications"""

__version__ = "0.1.0"
