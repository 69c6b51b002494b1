"""Temporal period engine.

- frequency.py: Frequency tag, display names, workflow compatibility
- calendar.py: label <-> instant codec per frequency, start period
- sequence.py: forward/backward period runs, fallback parsing, consistency checks
- cli.py: print a generated run from the command line
"""
