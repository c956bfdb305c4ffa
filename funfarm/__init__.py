"""FUN FARM reward ledger and anti-abuse policy engine."""

__version__ = "0.3.1"
