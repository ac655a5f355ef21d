"""LLM provider orchestration for Guardian AI capability calls."""
