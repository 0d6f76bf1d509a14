"""Investment tracker: FIFO position accounting for personal stock portfolios."""

__version__ = "0.1.0"
