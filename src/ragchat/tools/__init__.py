"""Remote tool discovery and invocation."""
