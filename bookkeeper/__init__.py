# bookkeeper/__init__.py
# Small-business bookkeeping API package

__version__ = "1.0.0"
