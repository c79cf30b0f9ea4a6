"""
Backend package for the personal-site API.

This package provides a FastAPI application with record-store and blob-store
abstractions for accounts, blog posts, inquiries and the files they own.
"""
