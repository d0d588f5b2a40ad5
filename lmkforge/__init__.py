"""Planetary terrain landmark maps: datums, projections, transforms, PLY export and drawing."""

__version__ = "0.1.0"