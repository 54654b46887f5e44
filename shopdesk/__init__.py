"""shopdesk: order fulfillment and inventory consistency engine."""

__version__ = "1.3.0"
