"""Tool framework for the agent loop.

Provides the tool protocol, the registry, and the built-in tools: file
reading, listing and editing, code search, shell execution, and peer
coordination.
"""
