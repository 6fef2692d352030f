"""buscacasas - Uruguay real estate listing aggregator."""

__version__ = "0.1.0"
