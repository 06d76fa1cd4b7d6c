"""Database module for the meeting context engine."""

from meeting_context.database.sqlite_manager import SQLiteManager

__all__ = ['SQLiteManager']
