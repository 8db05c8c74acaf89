"""Order estimation and signed CLOB request tooling for prediction markets."""

__version__ = "0.1.0"
