"""hearth: an interactive AI console that calls local capabilities."""
