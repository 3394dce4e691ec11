"""
Content Migrator

Moves schema, content, automation flows and access control from one
headless content platform instance to another.

Supports:
- Selection closure over collection relations
- Dependency-ordered item transfer with idempotent upserts
- Schema diffs filtered to the selected collections
- Two-phase flow import that keeps operation graphs intact
- Roles, policies, permissions and their links
- A CLI and an HTTP API over the same orchestrator
"""

__version__ = "0.1.0"
