"""Editable indicator grid: rows and cells, the undo/redo change log, persistence payloads.

- cells.py: Cell / GridRow data model and record conversion
- changelog.py: ChangeLog with reversible cell edits and row insertions
- payload.py: per-indicator payloads handed to the persistence layer
"""
