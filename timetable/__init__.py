# timetable/__init__.py
"""Daily timetable service: checklist state, local store and Drive sync."""

__version__ = "0.2.0"
