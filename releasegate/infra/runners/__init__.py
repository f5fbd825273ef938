"""ExternalRunner adapters, one per stage kind."""
