"""schemashift - dependency-ordered schema migration scheduler.

Exports a store's schema objects as artifacts in strict dependency order,
optionally incrementally, and replays them against a target store with
multi-pass retry for forward references and suspended referential
integrity around the data load.
"""

__version__ = "0.1.0"
