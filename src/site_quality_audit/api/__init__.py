"""HTTP API for triggering audit batches and reading their progress."""
