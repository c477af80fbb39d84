"""
storemigration

One-time migration of a legacy embedded relational store into a new embedded
store, run at host startup:

- Run-once guard based on a marker file next to the legacy store
- Versioned schema upgrade of the legacy store before extraction
- Streaming, batched table copy in foreign key order with binary fidelity
- Consumer pause/resume around the copy window
- Fail-open failure policy with an explicit, overridable marker policy
"""

__version__ = "0.1.0"
