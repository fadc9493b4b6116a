# ABOUTME: Foxops MCP Server package initialization
# ABOUTME: Exposes version information used in the User-Agent header

"""
Foxops MCP Server - manage Foxops incarnations via Model Context Protocol.

=============================================================================
WHAT IS FOXOPS?
=============================================================================

Foxops renders a TEMPLATE repository into a target repository. Each rendered
copy is called an INCARNATION. The Foxops API lets you:

1. CREATE an incarnation from a template version and a set of variables
2. READ an incarnation (its last commit, its latest merge request)
3. UPDATE it to a new template version or new variables, which opens a
   merge request in the target repository
4. DELETE the record of it

=============================================================================
PACKAGE STRUCTURE OVERVIEW
=============================================================================

foxops_mcp/
├── __init__.py          <- YOU ARE HERE: Package entry point
├── config.py            <- Configuration management (env vars, settings)
├── server.py            <- MCP server exposing incarnation tools
└── utils/
    ├── __init__.py      <- Utils subpackage marker
    ├── client.py        <- HTTP client for the Foxops incarnation API
    ├── errors.py        <- Exception hierarchy
    ├── logging.py       <- Structured logging with audit trails
    ├── models.py        <- Incarnation model and client interface
    ├── transport.py     <- User-Agent stamping transport
    └── wire.py          <- JSON wire models and template data union
"""

# Sent in the User-Agent header of every API request.
__version__ = "0.1.0"

__all__ = ["__version__"]
