"""
Request Validation and Sanitization App

This Django app validates every request at the trust boundary before business
logic runs: it parses the body, scans all values for injection patterns
(SQL injection, XSS, path traversal, command injection), optionally sanitizes
free text, and checks each target against a schema, returning one verdict.
"""
