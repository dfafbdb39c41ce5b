"""SQLite storage primitives shared by the orchestrator."""
