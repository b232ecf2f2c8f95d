"""graphedit - diagram editing core for entity/relation graphs."""

__version__ = "0.1.0"
