"""
Pub/Sub Gateway

Client-side facade over a message broker: pooled publisher sessions,
dedicated subscription sessions and a pull-style delivery cache.
"""

__version__ = "1.0.0"
