"""Orders service: order-from-cart saga, status state machine and event listener."""

__version__ = "1.0.0"
