"""Local AI chat: conversation state, local persistence and completion gateway."""
