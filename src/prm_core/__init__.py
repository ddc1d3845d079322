"""Product requirements management core.

Modules:
- models / database: persistence schema and session management
- repository: typed CRUD, reference lookup and transaction scoping
- state_machine: per-entity-type status workflows
- deletion: dependency reports and cascading deletes
- auth / pat / permissions: credentials and role gating
- services: domain operations used by the HTTP API
"""

__version__ = "1.0.0"
