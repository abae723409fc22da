"""Core harness infrastructure: exceptions and logging."""
