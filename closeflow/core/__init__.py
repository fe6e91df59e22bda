"""Core engine: approvals, workflow graph, audit trail and access control."""
