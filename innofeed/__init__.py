"""innofeed - insurance innovation news pipeline."""

__version__ = "1.0.0"
