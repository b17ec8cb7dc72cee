"""Interface metadata: declarative markers and their resolution."""
