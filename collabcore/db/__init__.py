"""collabcore Database — SQLAlchemy base, tables, session management."""
