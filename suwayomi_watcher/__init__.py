"""
Suwayomi Watcher - Forward new library chapters to Telegram.

A Python application that subscribes to a Suwayomi server's library
update feed and sends a Telegram notification for every new chapter.
"""

__version__ = "1.0.0"
