"""rocklock - reproducible, checksum-verified dependency locking for Lua projects."""

__version__ = "0.1.0"
