"""SEO reporting and task automation on top of Google Search Console data."""

__version__ = "1.0.0"
