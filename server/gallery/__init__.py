"""
Backend package for the memorial gallery API.

This package provides a FastAPI application that serves a small catalog of
photos and videos kept in S3-compatible object storage, with a single JSON
document as the metadata index.
"""
