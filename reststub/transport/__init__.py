"""Transport execution: timeouts, retries and the shared HTTP client."""
