"""Pure domain primitives. ZERO I/O."""
