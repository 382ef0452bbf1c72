"""
Telegram-бот «задача дня» для Codeforces.
"""

__version__ = "1.0.0"
