"""Response conversion into declared return shapes."""
