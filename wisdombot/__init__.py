"""Dog of Wisdom bot: scheduled wisdom posts, throwaway channels and Dutch snack nicknames."""

__version__ = "1.0.0"
