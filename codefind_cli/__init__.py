"""codefind: fuzzy symbol search over Python source trees, with optional AI re-ranking."""

__version__ = "0.3.0"
