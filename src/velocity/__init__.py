"""Developer velocity metrics: DORA, pull request, commit and AI-assistance metrics."""

__version__ = "0.1.0"
