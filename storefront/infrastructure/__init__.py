"""Infrastructure layer: configuration, database, gateway and notifier adapters."""
