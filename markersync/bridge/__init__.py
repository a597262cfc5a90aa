"""Bridge layer between markersync and the rendering service that owns the overlay.

Modules
-------
rendering
    The ``RenderingService`` protocol plus in-memory and JSON-file backends.
"""
