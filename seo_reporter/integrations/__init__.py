"""External service clients: Search Console, LLM providers, usage audit."""
