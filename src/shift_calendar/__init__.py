"""
Shift Calendar

Personal work-shift tracker: projects recurring shifts onto calendar months,
indexes them per day for display and estimates monthly earnings.
"""

__version__ = "1.0.0"
__author__ = "Shift Calendar Team"
