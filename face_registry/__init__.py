"""Face descriptor registry: labeled embedding storage and nearest-neighbour matching."""

__version__ = "0.1.0"
