"""Domain layer (entity schemas, normalization and the error taxonomy).

Domain modules should not depend on UI or on the HTTP client.
"""
