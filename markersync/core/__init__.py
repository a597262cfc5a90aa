"""Core sync components: snapshot reader, marker adapter, icon cache,
reconciliation engine, scheduler, and service lifecycle."""
