"""
RSS News Bot - Poll RSS feeds and deliver relevant news over Telegram.

A Python application that watches RSS/Atom feeds grouped by category,
keeps keyword-relevant new articles and fans them out to Telegram
subscribers according to the category each subscriber selected.
"""

__version__ = "1.0.0"
