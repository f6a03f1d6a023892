"""Provider detection, installation and introspection utilities."""
