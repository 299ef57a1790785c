"""Test helpers: an in-process fake Dify upstream."""

from .fake_dify import DifyReply, FakeDify, encode_event

__all__ = ["DifyReply", "FakeDify", "encode_event"]
