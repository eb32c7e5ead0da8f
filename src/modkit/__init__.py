"""modkit -- Minecraft mod project scaffolder."""

__version__ = "0.1.0"
