"""Client side of the sync layer: event-stream engine, settings draft,
query cache and the presence heartbeat driver."""
