"""crypto-alerter: email alerts when tracked cryptocurrencies rise past a threshold."""

__version__ = "0.1.0"
