"""Storage exceptions shared by every store backend."""


class DatabaseError(Exception):
    """Custom exception for database operations"""
    pass
