"""Resume review service: document text extraction and LLM feedback."""
__version__ = "0.3.0"
