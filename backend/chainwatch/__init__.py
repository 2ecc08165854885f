"""Live monitor: data source client, storage, prediction and alert services."""
