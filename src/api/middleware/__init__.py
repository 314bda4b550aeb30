# src/api/middleware/__init__.py
