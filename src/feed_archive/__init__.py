"""Local cache for archiving account-scoped article feeds and exporting them offline."""

__version__ = "0.1.0"
