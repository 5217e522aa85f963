"""Pure domain value objects. ZERO I/O."""
