"""Terminal output for sync results.

Modules
-------
renderer
    ``SyncRenderer`` turns ``TickReport`` and marker listings into Rich
    renderables.
"""
