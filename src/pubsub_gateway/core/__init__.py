"""Core layer: configuration, exceptions, logging, interfaces and resilience primitives."""
