"""Anonymous prompt-template chat with an OpenAI-compatible relay."""
