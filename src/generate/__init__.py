# src/generate/__init__.py
