"""Live chat backend: conversation sessions, automated replies and agent handoff."""
