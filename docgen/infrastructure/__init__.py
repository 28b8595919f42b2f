"""Infrastructure layer: remote collection store access and local durable storage."""
