# timetable_bot/__init__.py
