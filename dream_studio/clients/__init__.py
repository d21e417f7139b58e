"""
Replicate API Client Package

Replicate Predictions API への非同期クライアントを提供する。
"""

from dream_studio.clients.replicate_client import ReplicateAsyncClient

__all__ = ["ReplicateAsyncClient"]
