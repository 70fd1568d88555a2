"""Request orchestration: workspaces, cancellation, prompts, and the Gateway."""
