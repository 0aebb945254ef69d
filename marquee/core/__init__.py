"""Core models, errors, provenance and instrumentation shared by every stage."""
