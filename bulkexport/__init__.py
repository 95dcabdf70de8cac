"""Streaming export of a MongoDB collection into one S3 object (multipart upload)."""

__version__ = "0.1.0"
