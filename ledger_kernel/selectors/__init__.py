"""Read-only query selectors.  Selectors never add, flush or commit."""
