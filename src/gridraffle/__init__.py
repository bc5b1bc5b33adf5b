"""Pick random winning cells from grids drawn over images."""

__version__ = "0.1.0"
