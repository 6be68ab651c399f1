"""Infrastructure layer: broker transport, file storage and monitoring."""
