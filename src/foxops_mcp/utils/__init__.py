# ABOUTME: Utilities package initialization for Foxops MCP Server
# ABOUTME: Contains the API client stack, wire mapping, errors, and logging

"""
Foxops MCP Utilities Package

Shared utilities:
    - client.py: Foxops incarnation API client with retry logic
    - transport.py: httpx transport adding the User-Agent header
    - wire.py: JSON wire models and the template data union
    - models.py: Incarnation model and the client capability interface
    - errors.py: Exception hierarchy for client failures
    - logging.py: Structured logging with correlation IDs
"""
