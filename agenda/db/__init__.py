from .session import Base, create_session_factory, create_store_engine, create_tables

__all__ = ["Base", "create_session_factory", "create_store_engine", "create_tables"]
