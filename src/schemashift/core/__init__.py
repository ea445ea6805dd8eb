"""Core primitives shared by generation and replay: models, the bucket
table, errors, results, settings, logging and the export snapshot."""
