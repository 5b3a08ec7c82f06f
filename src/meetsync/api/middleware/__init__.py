"""HTTP middleware: structured request logging."""
