"""School timetable backend: Flask API over MySQL."""

__version__ = "0.1.0"
