"""MCP servers exposing the stored ad replies.

The message server also hosts the ``/api/message`` HTTP endpoint that
``ApiMessageGateway`` posts records to.
"""
