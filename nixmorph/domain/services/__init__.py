"""
Domain Services Package

Architectural Intent:
- Concurrency primitives and selection logic shared by every host pipeline
- No I/O; adapters are reached only through ports

Modules are imported directly (entities depend on keyed_store, so this
package does not re-export to keep import order acyclic).
"""
