"""Idempotent GPU-server provisioning for llama.cpp and its chat UI."""

__version__ = "0.1.0"
