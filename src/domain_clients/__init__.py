"""Transaction clients for Cosmos-SDK and EVM domains."""

__version__ = "0.1.0"
