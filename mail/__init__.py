"""mail/ -- Outbound email through the Mailgun HTTP API."""
