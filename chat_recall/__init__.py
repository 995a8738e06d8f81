"""chat-recall: retrieval over exported chat history."""

__version__ = "0.1.0"
