"""
Bar data model, validation, and CSV/JSON I/O.

Defines the immutable Bar/BarSeries contract consumed by every engine stage
and the readers/writers that move bars and results on and off disk.
"""
