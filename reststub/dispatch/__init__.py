"""Dispatch: the engine, its service registry and generated stubs."""
