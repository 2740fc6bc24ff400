"""Well-Architected Framework audit for Azure tenants and subscriptions."""

__version__ = "0.1.0"
