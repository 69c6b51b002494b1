"""Period engine, change log and composite formulas for the indicator grid editor."""

__version__ = "0.1.0"
