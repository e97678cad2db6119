"""Application layer: use cases, ports and the process-wide job state."""
