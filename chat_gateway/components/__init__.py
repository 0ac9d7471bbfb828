"""
Chat Gateway Components.

Organized into domain-specific modules:
- core/       - Foundational components (constants, context helpers)
- connection/ - Transport adapter and rate limiting
- events/     - Inbound and outbound frame variants
- metrics/    - Observability (collector)

Import from the specific submodules.
"""
